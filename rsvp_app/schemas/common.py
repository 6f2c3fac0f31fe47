from datetime import datetime
from typing import Any, Dict, Generic, Optional
from ..utils.constants import ResponseMessages
from pydantic import BaseModel, Field
from typing import TypeVar

T = TypeVar("T")


class BaseResponse(BaseModel, Generic[T]):
    """Base response model for all API responses"""

    success: bool = True
    message: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    data: Optional[T] = None


class SuccessResponse(BaseResponse[T]):
    """Standard success response with typed data"""

    success: bool = True


class ErrorResponse(BaseResponse[None]):
    """Standard error response"""

    success: bool = False
    error_code: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    data: None = None


class ResponseFactory:
    """Factory for creating consistent API responses"""

    @staticmethod
    def success(
        data: T = None, message: str = ResponseMessages.SUCCESS
    ) -> SuccessResponse[T]:
        return SuccessResponse(data=data, message=message)

    @staticmethod
    def error(
        message: str, error_code: str = None, details: Dict[str, Any] = None
    ) -> ErrorResponse:
        return ErrorResponse(message=message, error_code=error_code, details=details)
