from prometheus_client import Counter, Histogram

# Registered once per process; every PasteService instance records into these.
OPERATIONS = Counter('pastedb_operations_total', 'Total number of paste operations',
                     ['operation', 'outcome'])
OPERATION_LATENCY = Histogram('pastedb_operation_latency_seconds', 'Paste operation latency',
                              ['operation'])
