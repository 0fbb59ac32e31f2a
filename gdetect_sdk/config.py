"""Client configuration, validation and the per-variant path scheme."""

from __future__ import annotations

import enum
import random
import re
from dataclasses import dataclass, field
from urllib.parse import quote, urlsplit

from gdetect_sdk.exceptions import (
    GDetectBadTokenError,
    GDetectInvalidEndpointError,
    GDetectNotSupportedError,
)

DEFAULT_TIMEOUT = 300.0

_TOKEN_RE = re.compile(r"^[a-f0-9-]{44}$")


class ApiVariant(str, enum.Enum):
    """API family the client talks to."""

    DETECT = "detect"
    SYNDETECT = "syndetect"


class Operation(str, enum.Enum):
    SUBMIT = "submit"
    RESULT = "result"
    SEARCH = "search"
    RESULTS = "results"
    STATUS = "status"
    FULL_RESULT = "full_result"
    VERSIONS = "versions"


# Syndetect exposes a subset of detect; operations missing here are not supported.
_PATHS: dict[ApiVariant, dict[Operation, str]] = {
    ApiVariant.DETECT: {
        Operation.SUBMIT: "/api/lite/v2/submit",
        Operation.RESULT: "/api/lite/v2/results/{uuid}",
        Operation.SEARCH: "/api/lite/v2/search/{sha256}",
        Operation.RESULTS: "/api/lite/v2/results",
        Operation.STATUS: "/api/lite/v2/status",
        Operation.FULL_RESULT: "/api/lite/v2/results/{uuid}/full",
        Operation.VERSIONS: "/api/versions",
    },
    ApiVariant.SYNDETECT: {
        Operation.SUBMIT: "/api/v1/submit",
        Operation.RESULT: "/api/v1/results/{uuid}",
        Operation.VERSIONS: "/api/versions",
    },
}


def validate_token(token: str) -> None:
    """Raise :class:`GDetectBadTokenError` unless *token* is 44 lowercase hex/hyphen chars."""
    if not isinstance(token, str) or not _TOKEN_RE.fullmatch(token):
        raise GDetectBadTokenError("bad token")


def validate_endpoint(endpoint: str) -> None:
    """Raise :class:`GDetectInvalidEndpointError` unless *endpoint* is an absolute http(s) URL."""
    try:
        parts = urlsplit(endpoint)
    except (TypeError, ValueError) as exc:
        raise GDetectInvalidEndpointError(f"invalid endpoint {endpoint!r}: {exc}") from exc
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise GDetectInvalidEndpointError(
            f"invalid endpoint {endpoint!r}: expected an absolute http(s) URL"
        )


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry of transient HTTP statuses for idempotent requests.

    Disabled by default (``max_retries=0``).
    """

    max_retries: int = 0
    base_delay: float = 0.5
    max_delay: float = 10.0
    jitter: bool = True
    retry_statuses: frozenset[int] = field(default_factory=lambda: frozenset({429, 502, 503, 504}))

    def should_retry(self, status_code: int, attempt: int) -> bool:
        return attempt < self.max_retries and status_code in self.retry_statuses

    def delay(self, attempt: int) -> float:
        """Exponential backoff before retry number *attempt* (0-based)."""
        delay = min(self.base_delay * (2**attempt), self.max_delay)
        if self.jitter:
            delay = delay * (0.5 + random.random() * 0.5)  # noqa: S311
        return delay


@dataclass(frozen=True)
class ClientConfig:
    """Validated, immutable client settings.

    Build with :meth:`create`, which checks the token and endpoint. Clients
    swap a whole snapshot on reconfiguration, never single fields.
    """

    endpoint: str
    token: str = field(repr=False)
    insecure: bool = False
    variant: ApiVariant = ApiVariant.DETECT
    timeout: float = DEFAULT_TIMEOUT
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    @classmethod
    def create(
        cls,
        endpoint: str,
        token: str,
        insecure: bool = False,
        syndetect: bool = False,
        timeout: float = DEFAULT_TIMEOUT,
        retry: RetryPolicy | None = None,
    ) -> ClientConfig:
        validate_token(token)
        validate_endpoint(endpoint)
        return cls(
            endpoint=endpoint,
            token=token,
            insecure=insecure,
            variant=ApiVariant.SYNDETECT if syndetect else ApiVariant.DETECT,
            timeout=timeout,
            retry=retry or RetryPolicy(),
        )

    @property
    def base_url(self) -> str:
        """``scheme://host[:port]`` of the endpoint; API paths are absolute."""
        parts = urlsplit(self.endpoint)
        return f"{parts.scheme}://{parts.netloc}"

    def supports(self, operation: Operation) -> bool:
        return operation in _PATHS[self.variant]

    def url_for(self, operation: Operation, **path_args: str) -> str:
        """Absolute URL of *operation* for the active variant.

        Raises:
            GDetectNotSupportedError: If the variant has no such endpoint.
        """
        try:
            template = _PATHS[self.variant][operation]
        except KeyError:
            raise GDetectNotSupportedError(
                f"{operation.value} is not supported by the {self.variant.value} API"
            ) from None
        path = template.format(**{k: quote(v, safe="") for k, v in path_args.items()})
        return f"{self.base_url}{path}"
