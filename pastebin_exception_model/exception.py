class InvalidInputError(Exception):
    """
    Exception raised when a caller supplies content or arguments that cannot be
    stored, e.g. empty paste content or a negative page number.
    """
    def __init__(self, message, reason=None):
        self.reason = reason
        self.message = message
        super().__init__(self.message)

    def __str__(self):
        if self.reason is not None:
            return f"{self.message} (reason={self.reason})"
        return self.message


class OversizeError(InvalidInputError):
    """
    Exception raised when an encoded paste would not fit in the bounded record size.

    Subclasses InvalidInputError so the service boundary can treat it as an
    invalid input while still reporting the exact size and limit.
    """
    def __init__(self, message, size=None, limit=None):
        self.size = size
        self.limit = limit
        super().__init__(message, reason="oversize")

    def __str__(self):
        details = []
        if self.size is not None:
            details.append(f"size={self.size}")
        if self.limit is not None:
            details.append(f"limit={self.limit}")

        if details:
            return f"{self.message} ({', '.join(details)})"
        return self.message


class NotFoundError(Exception):
    """
    Exception raised when an operation targets a paste id that was never
    created or has already been deleted.

    Attributes:
        paste_id -- ID of the paste that was not found
        message -- explanation of the error
    """

    def __init__(self, message, paste_id=None):
        self.paste_id = paste_id
        self.message = message
        super().__init__(self.message)

    def __str__(self):
        if self.paste_id is not None:
            return f"{self.message} (paste_id={self.paste_id})"
        return self.message


class CorruptRecordError(Exception):
    """
    Exception raised when bytes read back from storage do not decode into a
    well-formed record. Indicates a storage integrity violation; never retried.
    """
    def __init__(self, message, paste_id=None, offset=None, cause: Exception = None):
        self.paste_id = paste_id
        self.offset = offset
        self.message = message
        self.cause = cause
        super().__init__(self.message)

    def __str__(self):
        details = []
        if self.paste_id is not None:
            details.append(f"paste_id={self.paste_id}")
        if self.offset is not None:
            details.append(f"offset={self.offset}")
        if self.cause is not None:
            details.append(f"cause={self.cause}")

        if details:
            return f"{self.message} ({', '.join(details)})"
        return self.message


class StorageFailureException(Exception):
    """
    Exception raised when disk full, write I/O error, layout mismatch, or
    another underlying storage layer fault during persistence.
    """
    def __init__(self, message, path=None, cause: Exception = None):
        self.path = path
        self.message = message
        self.cause = cause
        super().__init__(self.message)

    def __str__(self):
        details = []
        if self.path is not None:
            details.append(f"path={self.path}")
        if self.cause is not None:
            details.append(f"cause={self.cause}")

        if details:
            return f"{self.message} ({', '.join(details)})"
        return self.message
