# fieldops_app/api/__init__.py
from .client import FieldOpsAPIClient
from .exceptions import (
    FieldOpsAPIError, APIConnectionError, APIRequestError,
    APIResponseError, AuthenticationError, ServerStatusError
)
from .schemas import SyncEnvelope, UploadAck, DownloadParams, SingleRecordParams

__all__ = [
    "FieldOpsAPIClient",
    "FieldOpsAPIError", "APIConnectionError", "APIRequestError",
    "APIResponseError", "AuthenticationError", "ServerStatusError",
    "SyncEnvelope", "UploadAck", "DownloadParams", "SingleRecordParams",
]
