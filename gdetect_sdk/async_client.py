"""Asynchronous REST client for the GLIMPS Detect API (requires ``httpx``)."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import threading
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar

import httpx

from gdetect_sdk.config import DEFAULT_TIMEOUT, ApiVariant, ClientConfig, Operation, RetryPolicy
from gdetect_sdk.exceptions import (
    GDetectCancelledError,
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

logger = logging.getLogger("gdetect_sdk.async_client")

T = TypeVar("T")


def _build_client(
    insecure: bool, timeout: float, client: httpx.AsyncClient | None
) -> tuple[httpx.AsyncClient, bool]:
    if client is not None:
        return client, False
    return httpx.AsyncClient(verify=not insecure, timeout=timeout), True


async def _with_deadline(coro: Awaitable[T], timeout: float) -> T:
    try:
        return await asyncio.wait_for(coro, timeout)
    except asyncio.TimeoutError as exc:
        raise GDetectTimeoutError("timeout") from exc


async def _sleep(interval: float, cancel: asyncio.Event | None) -> None:
    """Sleep *interval* seconds, or raise as soon as *cancel* is set."""
    if cancel is None:
        await asyncio.sleep(interval)
        return
    if cancel.is_set():
        raise GDetectCancelledError("operation cancelled")
    try:
        await asyncio.wait_for(cancel.wait(), interval)
    except asyncio.TimeoutError:
        return
    raise GDetectCancelledError("operation cancelled")


class AsyncGDetectClient:
    """Asynchronous client for the GLIMPS Detect REST API.

    Requires the ``httpx`` package (install with ``pip install gdetect-sdk[async]``).

    Args:
        endpoint: Root URL of the Detect API server.
        token: API token (44 lowercase hexadecimal characters and hyphens).
        insecure: Disable TLS certificate verification.
        syndetect: Talk to the syndetect API (``/api/v1``) instead of detect.
        timeout: Default request timeout in seconds.
        client: Optional pre-configured :class:`httpx.AsyncClient`.
        retry: Retry policy for transient statuses on GET requests.

    Example::

        async with AsyncGDetectClient("https://gmalware.example", token) as client:
            result = await client.wait_for_file("/tmp/sample.exe")
            print(result.is_malware)

    Cancelling the task running :meth:`wait_for_file` interrupts the wait,
    including an in-flight request, and propagates :class:`asyncio.CancelledError`.
    """

    def __init__(
        self,
        endpoint: str,
        token: str,
        insecure: bool = False,
        syndetect: bool = False,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
        retry: RetryPolicy | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._config = ClientConfig.create(endpoint, token, insecure, syndetect, timeout, retry)
        self._client, self._owns_client = _build_client(insecure, timeout, client)

    @property
    def config(self) -> ClientConfig:
        with self._lock:
            return self._config

    async def reconfigure(
        self,
        endpoint: str,
        token: str,
        insecure: bool = False,
        syndetect: bool = False,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
        retry: RetryPolicy | None = None,
    ) -> None:
        """Replace the whole configuration and transport at once.

        Validation happens before the swap. Do not call while other
        operations on this client are running.
        """
        config = ClientConfig.create(endpoint, token, insecure, syndetect, timeout, retry)
        new_client, owns = _build_client(insecure, timeout, client)
        with self._lock:
            old_client, old_owned = self._client, self._owns_client
            self._config = config
            self._client, self._owns_client = new_client, owns
        if old_owned and old_client is not new_client:
            await old_client.aclose()
        logger.info("Client reconfigured for %s (%s)", config.endpoint, config.variant.value)

    def set_syndetect(self) -> None:
        """Switch to the syndetect API variant, keeping every other setting."""
        with self._lock:
            self._config = dataclasses.replace(self._config, variant=ApiVariant.SYNDETECT)

    async def submit_file(self, file: FileInput, options: SubmitOptions | None = None) -> str:
        """Submit a file for analysis and return its UUID."""
        options = options or SubmitOptions()
        config, client = self._snapshot()
        content, filename = load_upload(file, options.filename)
        return await self._submit(config, client, content, filename, options)

    async def get_result_by_uuid(self, uuid: str) -> Result:
        config, client = self._snapshot()
        return await self._get_result(config, client, uuid)

    async def get_result_by_sha256(self, sha256: str) -> Result:
        config, client = self._snapshot()
        url = config.url_for(Operation.SEARCH, sha256=sha256)
        return await self._get_model(config, client, url, Result.from_dict)

    async def get_full_submission_by_uuid(self, uuid: str) -> Any:
        config, client = self._snapshot()
        url = config.url_for(Operation.FULL_RESULT, uuid=uuid)
        resp = await self._execute(config, client, "GET", url)
        raise_for_status(resp.status_code, resp.reason_phrase, resp.text)
        return decode_json(resp.content)

    async def get_results(
        self, from_: int = 0, size: int = 20, tags: Sequence[str] = ()
    ) -> list[Submission]:
        """List previous submissions; a 404 answer means no results."""
        config, client = self._snapshot()
        url = config.url_for(Operation.RESULTS)
        params: dict[str, Any] = {"from": from_, "size": size}
        if tags:
            params["tags"] = tags[0]
        resp = await self._execute(config, client, "GET", url, params=params)
        if resp.status_code == 404:
            return []
        raise_for_status(resp.status_code, resp.reason_phrase, resp.text)
        data = expect_object(decode_json(resp.content), resp.content)
        return decode_model(parse_submissions, data, resp.content)

    async def get_profile_status(self) -> ProfileStatus:
        config, client = self._snapshot()
        url = config.url_for(Operation.STATUS)
        return await self._get_model(config, client, url, ProfileStatus.from_dict)

    async def get_api_version(self) -> str:
        config, client = self._snapshot()
        url = config.url_for(Operation.VERSIONS)
        return parse_api_version(await self._get_object(config, client, url))

    async def wait_for_file(
        self,
        file: FileInput,
        options: WaitForOptions | None = None,
        cancel: asyncio.Event | None = None,
    ) -> Result:
        """Submit a file and poll until its analysis is done.

        Raises:
            GDetectTimeoutError: If no done result arrives within the timeout.
            GDetectCancelledError: If *cancel* is set first.
        """
        options = options or WaitForOptions()
        config, client = self._snapshot()
        content, filename = load_upload(file, options.filename)
        return await _with_deadline(
            self._wait_for_content(config, client, content, filename, options, cancel),
            options.timeout,
        )

    async def wait_for_uuid(
        self,
        uuid: str,
        pull_time: float = DEFAULT_PULL_TIME,
        timeout: float = DEFAULT_WAIT_TIMEOUT,
        cancel: asyncio.Event | None = None,
    ) -> Result:
        """Poll an already-submitted analysis until it is done."""
        config, client = self._snapshot()
        return await _with_deadline(
            self._poll(config, client, uuid, pull_time or DEFAULT_PULL_TIME, cancel),
            timeout or DEFAULT_WAIT_TIMEOUT,
        )

    def extract_token_view_url(self, result: Result) -> str:
        return extract_token_view_url(self.config.endpoint, result)

    def extract_expert_view_url(self, result: Result) -> str:
        return extract_expert_view_url(self.config.endpoint, result)

    async def close(self) -> None:
        """Close the underlying HTTP client if owned by this instance."""
        with self._lock:
            client, owned = self._client, self._owns_client
        if owned:
            await client.aclose()

    async def __aenter__(self) -> AsyncGDetectClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _snapshot(self) -> tuple[ClientConfig, httpx.AsyncClient]:
        with self._lock:
            return self._config, self._client

    async def _wait_for_content(
        self,
        config: ClientConfig,
        client: httpx.AsyncClient,
        content: bytes,
        filename: str,
        options: WaitForOptions,
        cancel: asyncio.Event | None,
    ) -> Result:
        if not options.bypass_cache and config.supports(Operation.SEARCH):
            cached = await self._precheck(config, client, sha256_hex(content))
            if cached is not None:
                return cached
        if cancel is not None and cancel.is_set():
            raise GDetectCancelledError("operation cancelled")
        uuid = await self._submit(config, client, content, filename, options.submit_options())
        return await self._poll(config, client, uuid, options.pull_time, cancel)

    async def _precheck(
        self, config: ClientConfig, client: httpx.AsyncClient, sha256: str
    ) -> Result | None:
        url = config.url_for(Operation.SEARCH, sha256=sha256)
        try:
            result = await self._get_model(config, client, url, Result.from_dict)
        except GDetectHTTPError as exc:
            if exc.code != 404:
                raise
            logger.debug("No previous analysis for %s", sha256[:16])
            return None
        if not result.done:
            return None
        logger.info("Reusing done analysis %s for %s", result.uuid, sha256[:16])
        return result

    async def _submit(
        self,
        config: ClientConfig,
        client: httpx.AsyncClient,
        content: bytes,
        filename: str,
        options: SubmitOptions,
    ) -> str:
        url = config.url_for(Operation.SUBMIT)
        logger.info("Submitting %s (%d bytes)", filename, len(content))
        resp = await self._execute(
            config,
            client,
            "POST",
            url,
            files={"file": (filename, content)},
            data=form_fields(options),
        )
        raise_for_status(resp.status_code, resp.reason_phrase, resp.text)
        uuid = parse_submit_response(expect_object(decode_json(resp.content), resp.content))
        logger.info("File %s submitted, uuid=%s", filename, uuid)
        return uuid

    async def _poll(
        self,
        config: ClientConfig,
        client: httpx.AsyncClient,
        uuid: str,
        pull_time: float,
        cancel: asyncio.Event | None,
    ) -> Result:
        while True:
            await _sleep(pull_time, cancel)
            result = await self._get_result(config, client, uuid)
            if result.done:
                logger.info("Analysis %s done: malware=%s score=%d", uuid, result.is_malware, result.score)
                return result
            logger.debug("Analysis %s pending, next poll in %.1fs", uuid, pull_time)

    async def _get_result(self, config: ClientConfig, client: httpx.AsyncClient, uuid: str) -> Result:
        url = config.url_for(Operation.RESULT, uuid=uuid)
        return await self._get_model(config, client, url, Result.from_dict)

    async def _get_object(self, config: ClientConfig, client: httpx.AsyncClient, url: str) -> dict:
        resp = await self._execute(config, client, "GET", url)
        raise_for_status(resp.status_code, resp.reason_phrase, resp.text)
        return expect_object(decode_json(resp.content), resp.content)

    async def _get_model(
        self,
        config: ClientConfig,
        client: httpx.AsyncClient,
        url: str,
        factory: Callable[[dict], T],
    ) -> T:
        resp = await self._execute(config, client, "GET", url)
        raise_for_status(resp.status_code, resp.reason_phrase, resp.text)
        data = expect_object(decode_json(resp.content), resp.content)
        return decode_model(factory, data, resp.content)

    async def _execute(
        self,
        config: ClientConfig,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> httpx.Response:
        headers = {AUTH_HEADER: config.token}
        policy = config.retry
        attempt = 0
        while True:
            try:
                resp = await client.request(
                    method, url, headers=headers, timeout=config.timeout, **kwargs
                )
            except httpx.TimeoutException as exc:
                raise GDetectTimeoutError(str(exc)) from exc
            except httpx.RequestError as exc:
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
            await asyncio.sleep(delay)
