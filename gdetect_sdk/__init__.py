"""GLIMPS Detect SDK — Python client for the GLIMPS Malware detect API."""

from gdetect_sdk.client import GDetectClient
from gdetect_sdk.config import ApiVariant, ClientConfig, RetryPolicy
from gdetect_sdk.exceptions import (
    GDetectBadTokenError,
    GDetectCancelledError,
    GDetectConnectionError,
    GDetectDecodeError,
    GDetectError,
    GDetectFileError,
    GDetectHTTPError,
    GDetectInvalidEndpointError,
    GDetectNoSIDError,
    GDetectNoTokenError,
    GDetectNotSupportedError,
    GDetectSubmissionRejectedError,
    GDetectTimeoutError,
)
from gdetect_sdk.models import (
    ProfileStatus,
    Result,
    Submission,
    SubmitOptions,
    WaitForOptions,
)
from gdetect_sdk.urls import extract_expert_view_url, extract_token_view_url

__version__ = "0.1.0"

__all__ = [
    "GDetectClient",
    "AsyncGDetectClient",
    "ApiVariant",
    "ClientConfig",
    "RetryPolicy",
    "Result",
    "Submission",
    "ProfileStatus",
    "SubmitOptions",
    "WaitForOptions",
    "extract_token_view_url",
    "extract_expert_view_url",
    "GDetectError",
    "GDetectBadTokenError",
    "GDetectInvalidEndpointError",
    "GDetectFileError",
    "GDetectHTTPError",
    "GDetectDecodeError",
    "GDetectSubmissionRejectedError",
    "GDetectNotSupportedError",
    "GDetectNoTokenError",
    "GDetectNoSIDError",
    "GDetectTimeoutError",
    "GDetectCancelledError",
    "GDetectConnectionError",
]


def __getattr__(name: str) -> object:
    """Lazy-import the async client so ``httpx`` is optional at import time."""
    if name == "AsyncGDetectClient":
        from gdetect_sdk.async_client import AsyncGDetectClient

        return AsyncGDetectClient
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
