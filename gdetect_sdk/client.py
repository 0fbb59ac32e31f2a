"""Synchronous REST client for the GLIMPS Detect API."""

from __future__ import annotations

import dataclasses
import logging
import threading
from collections.abc import Callable, Sequence
from typing import Any, TypeVar

import requests

from gdetect_sdk.config import DEFAULT_TIMEOUT, ApiVariant, ClientConfig, Operation, RetryPolicy
from gdetect_sdk.deadline import Deadline
from gdetect_sdk.exceptions import (
    GDetectConnectionError,
    GDetectHTTPError,
    GDetectTimeoutError,
)
from gdetect_sdk.models import (
    DEFAULT_PULL_TIME,
    DEFAULT_WAIT_TIMEOUT,
    ProfileStatus,
    Result,
    Submission,
    SubmitOptions,
    WaitForOptions,
)
from gdetect_sdk.protocol import (
    AUTH_HEADER,
    FileInput,
    decode_json,
    decode_model,
    expect_object,
    form_fields,
    load_upload,
    parse_api_version,
    parse_submissions,
    parse_submit_response,
    raise_for_status,
    sha256_hex,
)
from gdetect_sdk.urls import extract_expert_view_url, extract_token_view_url

logger = logging.getLogger("gdetect_sdk.client")

T = TypeVar("T")


def _build_session(insecure: bool, session: requests.Session | None) -> tuple[requests.Session, bool]:
    """Return the session to use and whether the client owns it.

    A caller-supplied session is used as-is, its own ``verify`` setting wins.
    """
    if session is not None:
        return session, False
    own = requests.Session()
    own.verify = not insecure
    return own, True


class GDetectClient:
    """Synchronous client for the GLIMPS Detect REST API.

    Args:
        endpoint: Root URL of the Detect API server.
        token: API token (44 lowercase hexadecimal characters and hyphens).
        insecure: Disable TLS certificate verification.
        syndetect: Talk to the syndetect API (``/api/v1``) instead of detect.
        timeout: Default request timeout in seconds.
        session: Optional pre-configured :class:`requests.Session`.
        retry: Retry policy for transient statuses on GET requests.

    Raises:
        GDetectBadTokenError: If *token* is malformed.
        GDetectInvalidEndpointError: If *endpoint* is not an absolute URL.

    Example::

        client = GDetectClient("https://gmalware.example", token)
        result = client.wait_for_file("/tmp/sample.exe")
        print(result.is_malware, result.score)
    """

    def __init__(
        self,
        endpoint: str,
        token: str,
        insecure: bool = False,
        syndetect: bool = False,
        timeout: float = DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
        retry: RetryPolicy | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._config = ClientConfig.create(endpoint, token, insecure, syndetect, timeout, retry)
        self._session, self._owns_session = _build_session(insecure, session)

    @property
    def config(self) -> ClientConfig:
        with self._lock:
            return self._config

    def reconfigure(
        self,
        endpoint: str,
        token: str,
        insecure: bool = False,
        syndetect: bool = False,
        timeout: float = DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
        retry: RetryPolicy | None = None,
    ) -> None:
        """Replace the whole configuration and transport at once.

        The new settings are validated first; on error the current
        configuration stays in place. Operations already in flight keep the
        snapshot they started with, but the previously owned session is
        closed, so do not reconfigure while operations are running.
        """
        config = ClientConfig.create(endpoint, token, insecure, syndetect, timeout, retry)
        new_session, owns = _build_session(insecure, session)
        with self._lock:
            old_session, old_owned = self._session, self._owns_session
            self._config = config
            self._session, self._owns_session = new_session, owns
        if old_owned and old_session is not new_session:
            old_session.close()
        logger.info("Client reconfigured for %s (%s)", config.endpoint, config.variant.value)

    def set_syndetect(self) -> None:
        """Switch to the syndetect API variant, keeping every other setting."""
        with self._lock:
            self._config = dataclasses.replace(self._config, variant=ApiVariant.SYNDETECT)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def submit_file(self, file: FileInput, options: SubmitOptions | None = None) -> str:
        """Submit a file for analysis.

        Args:
            file: Path, raw bytes, or a readable binary stream.
            options: Tags, description, cache bypass, archive password and
                filename override.

        Returns:
            The analysis UUID.

        Raises:
            GDetectFileError: If the file cannot be read.
            GDetectSubmissionRejectedError: If the server refuses the submission.
            GDetectHTTPError: On any non-200 response.
        """
        options = options or SubmitOptions()
        config, session = self._snapshot()
        content, filename = load_upload(file, options.filename)
        return self._submit(config, session, content, filename, options, Deadline())

    def get_result_by_uuid(self, uuid: str) -> Result:
        """Fetch an analysis result by its UUID. Any non-200 status raises."""
        config, session = self._snapshot()
        return self._get_result(config, session, uuid, Deadline())

    def get_result_by_sha256(self, sha256: str) -> Result:
        """Search a previous analysis by file SHA-256. Any non-200 status raises."""
        config, session = self._snapshot()
        url = config.url_for(Operation.SEARCH, sha256=sha256)
        return self._get_model(config, session, url, Deadline(), Result.from_dict)

    def get_full_submission_by_uuid(self, uuid: str) -> Any:
        """Fetch the full, untyped submission document (detect only)."""
        config, session = self._snapshot()
        url = config.url_for(Operation.FULL_RESULT, uuid=uuid)
        resp = self._execute(config, session, "GET", url, Deadline())
        raise_for_status(resp.status_code, resp.reason, resp.text)
        return decode_json(resp.content)

    def get_results(self, from_: int = 0, size: int = 20, tags: Sequence[str] = ()) -> list[Submission]:
        """List previous submissions, newest first.

        The server answers 404 when nothing matches; that is reported as an
        empty list. Only the first tag is used as filter.
        """
        config, session = self._snapshot()
        url = config.url_for(Operation.RESULTS)
        params: dict[str, Any] = {"from": from_, "size": size}
        if tags:
            params["tags"] = tags[0]
        resp = self._execute(config, session, "GET", url, Deadline(), params=params)
        if resp.status_code == 404:
            return []
        raise_for_status(resp.status_code, resp.reason, resp.text)
        data = expect_object(decode_json(resp.content), resp.content)
        return decode_model(parse_submissions, data, resp.content)

    def get_profile_status(self) -> ProfileStatus:
        """Fetch quota and cache settings of the account (detect only)."""
        config, session = self._snapshot()
        url = config.url_for(Operation.STATUS)
        return self._get_model(config, session, url, Deadline(), ProfileStatus.from_dict)

    def get_api_version(self) -> str:
        """Return the server's lite v2 API version.

        Raises:
            GDetectNotSupportedError: With ``version == "unknown"`` when the
                server does not report a lite v2 version.
        """
        config, session = self._snapshot()
        url = config.url_for(Operation.VERSIONS)
        return parse_api_version(self._get_object(config, session, url, Deadline()))

    def wait_for_file(
        self,
        file: FileInput,
        options: WaitForOptions | None = None,
        cancel: threading.Event | None = None,
    ) -> Result:
        """Submit a file and poll until its analysis is done.

        Unless ``bypass_cache`` is set, a previous analysis of the same
        content is looked up by SHA-256 first and returned without
        submitting when it is already done.

        Args:
            file: Path, raw bytes, or a readable binary stream.
            options: Submission fields, total timeout and poll interval.
            cancel: Event that aborts the wait once set.

        Raises:
            GDetectTimeoutError: If no done result arrives within the timeout.
            GDetectCancelledError: If *cancel* is set first.
        """
        options = options or WaitForOptions()
        config, session = self._snapshot()
        deadline = Deadline(options.timeout, cancel)
        content, filename = load_upload(file, options.filename)

        if not options.bypass_cache and config.supports(Operation.SEARCH):
            cached = self._precheck(config, session, sha256_hex(content), deadline)
            if cached is not None:
                return cached

        uuid = self._submit(config, session, content, filename, options.submit_options(), deadline)
        return self._poll(config, session, uuid, options.pull_time, deadline)

    def wait_for_uuid(
        self,
        uuid: str,
        pull_time: float = DEFAULT_PULL_TIME,
        timeout: float = DEFAULT_WAIT_TIMEOUT,
        cancel: threading.Event | None = None,
    ) -> Result:
        """Poll an already-submitted analysis until it is done."""
        config, session = self._snapshot()
        deadline = Deadline(timeout or DEFAULT_WAIT_TIMEOUT, cancel)
        return self._poll(config, session, uuid, pull_time or DEFAULT_PULL_TIME, deadline)

    def extract_token_view_url(self, result: Result) -> str:
        return extract_token_view_url(self.config.endpoint, result)

    def extract_expert_view_url(self, result: Result) -> str:
        return extract_expert_view_url(self.config.endpoint, result)

    def close(self) -> None:
        """Close the underlying session if owned by this instance."""
        with self._lock:
            session, owned = self._session, self._owns_session
        if owned:
            session.close()

    def __enter__(self) -> GDetectClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _snapshot(self) -> tuple[ClientConfig, requests.Session]:
        with self._lock:
            return self._config, self._session

    def _precheck(
        self, config: ClientConfig, session: requests.Session, sha256: str, deadline: Deadline
    ) -> Result | None:
        url = config.url_for(Operation.SEARCH, sha256=sha256)
        try:
            result = self._get_model(config, session, url, deadline, Result.from_dict)
        except GDetectHTTPError as exc:
            if exc.code != 404:
                raise
            logger.debug("No previous analysis for %s", sha256[:16])
            return None
        if not result.done:
            logger.debug("Previous analysis %s for %s is not done", result.uuid, sha256[:16])
            return None
        logger.info("Reusing done analysis %s for %s", result.uuid, sha256[:16])
        return result

    def _submit(
        self,
        config: ClientConfig,
        session: requests.Session,
        content: bytes,
        filename: str,
        options: SubmitOptions,
        deadline: Deadline,
    ) -> str:
        url = config.url_for(Operation.SUBMIT)
        logger.info("Submitting %s (%d bytes)", filename, len(content))
        resp = self._execute(
            config,
            session,
            "POST",
            url,
            deadline,
            files={"file": (filename, content)},
            data=form_fields(options),
        )
        raise_for_status(resp.status_code, resp.reason, resp.text)
        uuid = parse_submit_response(expect_object(decode_json(resp.content), resp.content))
        logger.info("File %s submitted, uuid=%s", filename, uuid)
        return uuid

    def _poll(
        self,
        config: ClientConfig,
        session: requests.Session,
        uuid: str,
        pull_time: float,
        deadline: Deadline,
    ) -> Result:
        while True:
            deadline.sleep(pull_time)
            result = self._get_result(config, session, uuid, deadline)
            if result.done:
                logger.info("Analysis %s done: malware=%s score=%d", uuid, result.is_malware, result.score)
                return result
            logger.debug("Analysis %s pending, next poll in %.1fs", uuid, pull_time)

    def _get_result(
        self, config: ClientConfig, session: requests.Session, uuid: str, deadline: Deadline
    ) -> Result:
        url = config.url_for(Operation.RESULT, uuid=uuid)
        return self._get_model(config, session, url, deadline, Result.from_dict)

    def _get_object(
        self, config: ClientConfig, session: requests.Session, url: str, deadline: Deadline
    ) -> dict:
        resp = self._execute(config, session, "GET", url, deadline)
        raise_for_status(resp.status_code, resp.reason, resp.text)
        return expect_object(decode_json(resp.content), resp.content)

    def _get_model(
        self,
        config: ClientConfig,
        session: requests.Session,
        url: str,
        deadline: Deadline,
        factory: Callable[[dict], T],
    ) -> T:
        resp = self._execute(config, session, "GET", url, deadline)
        raise_for_status(resp.status_code, resp.reason, resp.text)
        data = expect_object(decode_json(resp.content), resp.content)
        return decode_model(factory, data, resp.content)

    def _execute(
        self,
        config: ClientConfig,
        session: requests.Session,
        method: str,
        url: str,
        deadline: Deadline,
        **kwargs: Any,
    ) -> requests.Response:
        headers = {AUTH_HEADER: config.token}
        if session.verify is False:
            # requests lets REQUESTS_CA_BUNDLE / CURL_CA_BUNDLE override the
            # session setting unless verify is also given per request
            kwargs.setdefault("verify", False)
        policy = config.retry
        attempt = 0
        while True:
            try:
                resp = session.request(
                    method, url, headers=headers, timeout=deadline.bound(config.timeout), **kwargs
                )
            except requests.Timeout as exc:
                raise GDetectTimeoutError(str(exc)) from exc
            except requests.RequestException as exc:
                raise GDetectConnectionError(str(exc)) from exc

            if method != "GET" or not policy.should_retry(resp.status_code, attempt):
                if attempt and resp.status_code in policy.retry_statuses:
                    logger.warning(
                        "All %d retries exhausted for %s: HTTP %d", attempt, url, resp.status_code
                    )
                return resp

            delay = policy.delay(attempt)
            attempt += 1
            logger.info(
                "Retry %d/%d for %s after %.1fs: HTTP %d",
                attempt,
                policy.max_retries,
                url,
                delay,
                resp.status_code,
            )
            deadline.sleep(delay)
