from .common import BaseResponse, SuccessResponse, ErrorResponse, ResponseFactory
from .response import ResponseSubmit, ResponseRecordOut, RosterEntry

__all__ = [
    "BaseResponse",
    "SuccessResponse",
    "ErrorResponse",
    "ResponseFactory",
    "ResponseSubmit",
    "ResponseRecordOut",
    "RosterEntry",
]
