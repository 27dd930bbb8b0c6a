import logging
import time
from functools import wraps
from typing import Any, List, Optional

from pastebin_data_model.paste import Paste, PasteId, is_blank
from pastebin_db.config import settings
from pastebin_db.engine.clock import MonotonicClock
from pastebin_db.engine.metrics import OPERATIONS, OPERATION_LATENCY
from pastebin_db.engine.storage_engine import PasteStorageEngine
from pastebin_exception_model.exception import InvalidInputError, NotFoundError

# Set up logger for this module
logger = logging.getLogger(__name__)


def _instrumented(operation: str):
    """Record call count, outcome and latency of a service operation."""
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                OPERATIONS.labels(operation=operation, outcome=type(e).__name__).inc()
                raise
            finally:
                OPERATION_LATENCY.labels(operation=operation).observe(time.perf_counter() - start)
            OPERATIONS.labels(operation=operation, outcome="success").inc()
            return result
        return wrapper
    return decorator


def _require_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInputError(f"{name} must be an integer, got {type(value).__name__}", reason=name)
    return value


class PasteService:
    """
    CRUD and query operations over a PasteStorageEngine.

    Every call reads or writes through the engine's record map; nothing is
    cached between calls. Id minting is serialized by the counter, each map
    write by the map's write lock, and update holds that lock across its
    read-modify-write.

    create_paste persists the counter bump before the record. If the insert
    then fails, the minted id stays consumed and is never handed out; no
    record is visible under it. Ids may have gaps but are never reused.
    """

    def __init__(self, engine: PasteStorageEngine, clock: Optional[MonotonicClock] = None,
                 default_per_page: Optional[int] = None):
        self._counter = engine.counter
        self._records = engine.records
        self._codec = engine.codec
        self._clock = clock or MonotonicClock()
        self._default_per_page = default_per_page if default_per_page is not None else settings.default_per_page

    def _validate_content(self, content: Any) -> None:
        if not isinstance(content, str):
            raise InvalidInputError(f"Content must be a string, got {type(content).__name__}", reason="type")
        if is_blank(content):
            raise InvalidInputError("Content cannot be empty", reason="empty")
        self._codec.check_size(content)

    @_instrumented("create_paste")
    def create_paste(self, content: str) -> PasteId:
        self._validate_content(content)

        paste_id = self._counter.next_id()
        paste = Paste(id=paste_id, content=content, timestamp=self._clock.now())
        self._records.insert_or_replace(paste_id, paste)
        logger.debug(f"Created paste {paste_id}")
        return paste_id

    @_instrumented("get_paste")
    def get_paste(self, paste_id: PasteId) -> Paste:
        _require_int(paste_id, "id")
        paste = self._records.get(paste_id)
        if paste is None:
            raise NotFoundError(f"Paste with id={paste_id} not found", paste_id=paste_id)
        return paste

    @_instrumented("list_pastes")
    def list_pastes(self, page: int = 1, per_page: Optional[int] = None) -> List[Paste]:
        """
        Return one page of pastes in ascending id order.

        A zero page or page size yields an empty list rather than being
        normalized; so does a page past the last record.
        """
        if per_page is None:
            per_page = self._default_per_page
        _require_int(page, "page")
        _require_int(per_page, "per_page")
        if page < 0 or per_page < 0:
            raise InvalidInputError("Page and page size must not be negative", reason="pagination")
        if page == 0 or per_page == 0:
            return []

        view = self._records.values()
        skip = (page - 1) * per_page
        if skip >= len(view):
            logger.debug(f"Page {page} (size {per_page}) is past the last of {len(view)} pastes")
            return []
        return list(view[skip:skip + per_page])

    @_instrumented("search_pastes")
    def search_pastes(self, keyword: str) -> List[Paste]:
        """Every paste whose content contains `keyword` verbatim, ascending by id."""
        if not isinstance(keyword, str):
            raise InvalidInputError(f"Keyword must be a string, got {type(keyword).__name__}", reason="type")
        if not keyword:
            return []
        matches = [paste for paste in self._records.values() if keyword in paste.content]
        logger.debug(f"Search for {keyword!r} matched {len(matches)} pastes")
        return matches

    @_instrumented("update_paste")
    def update_paste(self, paste_id: PasteId, new_content: str) -> Paste:
        _require_int(paste_id, "id")
        self._validate_content(new_content)

        with self._records.write_lock():
            existing = self._records.get(paste_id)
            if existing is None:
                raise NotFoundError(f"Paste with id={paste_id} not found", paste_id=paste_id)
            updated = existing.with_content(new_content, max(self._clock.now(), existing.timestamp))
            self._records.insert_or_replace(paste_id, updated)
        logger.debug(f"Updated paste {paste_id}")
        return updated

    @_instrumented("delete_paste")
    def delete_paste(self, paste_id: PasteId) -> Paste:
        _require_int(paste_id, "id")
        removed = self._records.remove(paste_id)
        if removed is None:
            raise NotFoundError(f"Paste with id={paste_id} not found", paste_id=paste_id)
        logger.debug(f"Deleted paste {paste_id}")
        return removed
