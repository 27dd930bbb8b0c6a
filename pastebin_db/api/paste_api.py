import logging
from functools import wraps

from pastebin_data_model.data_models import ApiResponse, ErrorKind, ErrorModel, PasteModel
from pastebin_db.engine.paste_service import PasteService
from pastebin_exception_model.exception import InvalidInputError, OversizeError, NotFoundError, \
    CorruptRecordError, StorageFailureException

logger = logging.getLogger(__name__)


def _as_response(func):
    """
    Wrap a service call so every outcome becomes an ApiResponse.

    Errors are reported as values and never raised past this boundary.
    Corruption and storage faults are logged and passed through verbatim.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return ApiResponse.success(func(*args, **kwargs))
        except OversizeError as e:
            return ApiResponse.failure(ErrorModel(kind=ErrorKind.OVERSIZE, message=str(e), reason=e.reason))
        except InvalidInputError as e:
            return ApiResponse.failure(ErrorModel(kind=ErrorKind.INVALID_INPUT, message=str(e), reason=e.reason))
        except NotFoundError as e:
            return ApiResponse.failure(ErrorModel(kind=ErrorKind.NOT_FOUND, message=str(e), paste_id=e.paste_id))
        except CorruptRecordError as e:
            logger.error(f"{func.__name__} hit a corrupt record: {e}")
            return ApiResponse.failure(ErrorModel(kind=ErrorKind.CORRUPT_RECORD, message=str(e),
                                                  paste_id=e.paste_id))
        except StorageFailureException as e:
            logger.error(f"{func.__name__} failed in the storage layer: {e}")
            return ApiResponse.failure(ErrorModel(kind=ErrorKind.STORAGE_FAILURE, message=str(e)))
    return wrapper


class PasteApi:
    """
    Result-value boundary over PasteService.

    Exposes the six paste operations verbatim with plain scalar and string
    arguments. Each call returns an ApiResponse carrying either the success
    value or an ErrorModel detailed enough to recover the failing id or the
    reason the input was rejected.
    """

    def __init__(self, service: PasteService):
        self._service = service

    @_as_response
    def create_paste(self, content: str):
        return self._service.create_paste(content)

    @_as_response
    def get_paste(self, paste_id: int):
        return PasteModel.from_paste(self._service.get_paste(paste_id))

    @_as_response
    def list_pastes(self, page: int = 1, per_page: int = None):
        return [PasteModel.from_paste(p) for p in self._service.list_pastes(page, per_page)]

    @_as_response
    def search_pastes(self, keyword: str):
        return [PasteModel.from_paste(p) for p in self._service.search_pastes(keyword)]

    @_as_response
    def update_paste(self, paste_id: int, new_content: str):
        return PasteModel.from_paste(self._service.update_paste(paste_id, new_content))

    @_as_response
    def delete_paste(self, paste_id: int):
        return PasteModel.from_paste(self._service.delete_paste(paste_id))
