from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import BaseModel, Field

from pastebin_data_model.paste import Paste


class PasteModel(BaseModel):
    """Model for Paste API representation"""
    id: int = Field(..., ge=0, description="Unique paste identifier")
    content: str = Field(..., description="Paste text")
    timestamp: int = Field(..., ge=0, description="Nanosecond time of the last create or update")

    @classmethod
    def from_paste(cls, paste: Paste) -> 'PasteModel':
        return cls(**paste.to_dict())


class ErrorKind(str, Enum):
    INVALID_INPUT = "InvalidInput"
    OVERSIZE = "Oversize"
    NOT_FOUND = "NotFound"
    CORRUPT_RECORD = "CorruptRecord"
    STORAGE_FAILURE = "StorageFailure"


class ErrorModel(BaseModel):
    """Error details returned in place of a success value"""
    kind: ErrorKind = Field(..., description="Error kind")
    message: str = Field(..., description="Human readable error description")
    paste_id: Optional[int] = Field(None, description="Id of the paste the operation targeted")
    reason: Optional[str] = Field(None, description="Why the input was rejected")


class ApiResponse(BaseModel):
    """Either a success value or an error, never both"""
    ok: bool = Field(..., description="True when the operation succeeded")
    value: Optional[Union[PasteModel, List[PasteModel], int]] = Field(None, description="Success value")
    error: Optional[ErrorModel] = Field(None, description="Error details when ok is false")

    @classmethod
    def success(cls, value: Any) -> 'ApiResponse':
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: ErrorModel) -> 'ApiResponse':
        return cls(ok=False, error=error)
