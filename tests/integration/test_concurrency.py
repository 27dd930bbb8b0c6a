import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from pastebin_db.config import Settings
from pastebin_db.engine.paste_service import PasteService
from pastebin_db.engine.storage_engine import PasteStorageEngine


@pytest.fixture
def service(tmp_path):
    settings = Settings(data_path=str(tmp_path / "pastes.db"), bucket_size=16384)
    engine = PasteStorageEngine.open(settings=settings)
    yield PasteService(engine)
    engine.close()


def test_concurrent_creates_yield_distinct_ids(service):
    k = 64
    with ThreadPoolExecutor(max_workers=8) as pool:
        ids = list(pool.map(lambda i: service.create_paste(f"concurrent {i}"), range(k)))

    assert len(set(ids)) == k
    assert sorted(ids) == list(range(k))
    stored = service.list_pastes(1, k)
    assert [p.id for p in stored] == sorted(ids)
    # no lost writes: each content landed under exactly one id
    assert sorted(p.content for p in stored) == sorted(f"concurrent {i}" for i in range(k))


def test_concurrent_updates_are_not_lost(service):
    paste_ids = [service.create_paste(f"initial {i}") for i in range(4)]

    def update(n):
        paste_id = paste_ids[n % 4]
        return service.update_paste(paste_id, f"update {n}")

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(update, range(40)))

    for paste_id in paste_ids:
        final = service.get_paste(paste_id)
        assert final.id == paste_id
        # the stored value is the last committed update for that id
        committed = [r for r in results if r.id == paste_id]
        assert final.content in {r.content for r in committed}
        assert final.timestamp == max(r.timestamp for r in committed)


def test_readers_never_see_partial_state(service):
    for i in range(10):
        service.create_paste(f"seed {i}")
    stop = threading.Event()
    problems = []

    def reader():
        while not stop.is_set():
            page = service.list_pastes(1, 1000)
            ids = [p.id for p in page]
            if ids != sorted(set(ids)) or any(not p.content for p in page):
                problems.append(ids)

    readers = [threading.Thread(target=reader) for _ in range(3)]
    for t in readers:
        t.start()
    try:
        for i in range(30):
            paste_id = service.create_paste(f"churn {i}")
            service.update_paste(paste_id, f"churned {i}")
            service.delete_paste(paste_id - 5)
    finally:
        stop.set()
        for t in readers:
            t.join(timeout=10)

    assert problems == []
