"""Wire conventions shared by the synchronous and asynchronous clients."""

from __future__ import annotations

import hashlib
import json
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any, BinaryIO, TypeVar, Union

from gdetect_sdk.exceptions import (
    GDetectDecodeError,
    GDetectFileError,
    GDetectHTTPError,
    GDetectNotSupportedError,
    GDetectSubmissionRejectedError,
)
from gdetect_sdk.models import Submission, SubmitOptions

FileInput = Union[str, Path, bytes, BinaryIO]
T = TypeVar("T")

AUTH_HEADER = "X-Auth-Token"
LITE_V2_API = "/api/lite/v2"
UNKNOWN_VERSION = "unknown"
DEFAULT_FILENAME = "file"


def load_upload(file: FileInput, filename: str = "") -> tuple[bytes, str]:
    """Read the payload to submit and pick the multipart filename.

    The whole payload is read and any file opened here is closed before
    returning.

    Raises:
        GDetectFileError: If the file cannot be read.
    """
    if isinstance(file, (str, Path)):
        path = Path(file)
        try:
            with open(path, "rb") as fh:
                content = fh.read()
        except OSError as exc:
            raise GDetectFileError(f"cannot read {path}: {exc}") from exc
        return content, filename or path.name
    if isinstance(file, (bytes, bytearray)):
        return bytes(file), filename or DEFAULT_FILENAME
    if hasattr(file, "read"):
        try:
            content = file.read()
        except OSError as exc:
            raise GDetectFileError(f"cannot read stream: {exc}") from exc
        name = getattr(file, "name", "")
        default = os.path.basename(name) if isinstance(name, str) and name else DEFAULT_FILENAME
        return content, filename or default
    raise GDetectFileError(f"unsupported file input: {type(file).__name__}")


def sha256_hex(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def form_fields(options: SubmitOptions) -> dict[str, str]:
    """Multipart form fields for *options*; empty options are left out."""
    fields: dict[str, str] = {}
    if options.bypass_cache:
        fields["bypass-cache"] = "true"
    if options.description:
        fields["description"] = options.description
    if options.tags:
        fields["tags"] = ",".join(options.tags)
    if options.archive_password:
        fields["archive_password"] = options.archive_password
    return fields


def raise_for_status(code: int, reason: str, body: str) -> None:
    if code == 200:
        return
    status = f"{code} {reason}".strip()
    raise GDetectHTTPError(status, code, body)


def decode_json(content: bytes) -> Any:
    try:
        return json.loads(content)
    except ValueError as exc:
        raise GDetectDecodeError(
            f"error unmarshaling response json, {exc}", raw_length=len(content)
        ) from exc


def expect_object(data: Any, content: bytes) -> dict:
    if not isinstance(data, dict):
        raise GDetectDecodeError(
            f"expected a JSON object, got {type(data).__name__}", raw_length=len(content)
        )
    return data


def parse_submit_response(data: dict) -> str:
    """Extract the analysis identifier from a submit response."""
    if not data.get("status", False):
        raise GDetectSubmissionRejectedError(data.get("error", "") or "submission rejected")
    return data.get("uuid") or data.get("id") or ""


def parse_api_version(data: dict) -> str:
    version = data.get(LITE_V2_API)
    if not version:
        raise GDetectNotSupportedError(
            "lite v2 API version is not exposed by this server", version=UNKNOWN_VERSION
        )
    return str(version)


def decode_model(factory: Callable[[Any], T], data: Any, content: bytes) -> T:
    """Build a model from decoded JSON.

    A document whose members have the wrong JSON type (a list where an
    object is expected, for instance) is a decode failure like malformed
    JSON.
    """
    try:
        return factory(data)
    except (AttributeError, TypeError, ValueError) as exc:
        raise GDetectDecodeError(
            f"error unmarshaling response json, {type(exc).__name__}: {exc}",
            raw_length=len(content),
        ) from exc


def parse_submissions(data: dict) -> list[Submission]:
    return [Submission.from_dict(s) for s in data.get("submissions") or ()]
