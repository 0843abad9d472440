"""HTTP client for the inference backend, with retry and exponential backoff."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass

import httpx

from shelly.brain.types import MessageRequest, MessageResponse

log = logging.getLogger(__name__)

_MAX_RETRY_DELAY_MS = 30_000
_PREVIEW_CHARS = 200


class BrainError(Exception):
    """Base class for errors raised during inference."""


class AuthenticationFailed(BrainError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"Authentication failed: {detail}")
        self.detail = detail


class InvalidRequest(BrainError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"Invalid request: {detail}")
        self.detail = detail


class InsufficientBalance(BrainError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"Insufficient balance: {detail}")
        self.detail = detail


class Exhausted(BrainError):
    def __init__(self, retries: int, last_error: str) -> None:
        super().__init__(
            f"Exhausted: max retries ({retries}) exceeded, last error: {last_error}"
        )
        self.retries = retries
        self.last_error = last_error


class ModelError(BrainError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"Model error: {detail}")
        self.detail = detail


class BrainTimeout(BrainError):
    def __init__(self, seconds: int) -> None:
        super().__init__(f"Timeout after {seconds} seconds")
        self.seconds = seconds


class NetworkError(BrainError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"Network error: {detail}")
        self.detail = detail


class SerializationError(BrainError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"Serialization error: {detail}")
        self.detail = detail


class BrainInitError(Exception):
    """Base class for errors raised while setting up the client."""


class ClientError(BrainInitError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"Failed to create HTTP client: {detail}")
        self.detail = detail


@dataclass
class BrainSettings:
    """Connection and sampling settings for the inference backend."""

    endpoint: str
    api_key: str
    default_model: str
    request_timeout_secs: float = 120
    max_retries: int = 3
    base_retry_delay_ms: int = 1000
    max_output_tokens: int = 4096
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None


class Brain:
    """Client for model inference over the Messages API."""

    def __init__(
        self,
        settings: BrainSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        log.info(
            "initializing brain endpoint=%s model=%s timeout_secs=%s max_retries=%s",
            settings.endpoint,
            settings.default_model,
            settings.request_timeout_secs,
            settings.max_retries,
        )
        try:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(settings.request_timeout_secs),
                transport=transport,
            )
        except (httpx.HTTPError, ValueError, TypeError, OSError) as exc:
            raise ClientError(str(exc)) from exc
        self._settings = settings
        log.info("brain initialized successfully")

    async def __aenter__(self) -> Brain:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def default_model(self) -> str:
        return self._settings.default_model

    def model(self) -> str:
        return self._settings.default_model

    def max_output_tokens(self) -> int:
        return self._settings.max_output_tokens

    def temperature(self) -> float | None:
        return self._settings.temperature

    def top_p(self) -> float | None:
        return self._settings.top_p

    def top_k(self) -> int | None:
        return self._settings.top_k

    async def infer(self, request: MessageRequest) -> MessageResponse:
        """Send a request, retrying failures with exponential backoff."""
        log.info(
            "starting inference model=%s messages_count=%d has_system=%s has_tools=%s max_tokens=%d",
            request.model,
            len(request.messages),
            request.system is not None,
            request.tools is not None,
            request.max_tokens,
        )
        start = time.monotonic()
        retries = 0
        while True:
            log.debug("sending request to inference backend retry=%d", retries)
            try:
                response = await self._send_request(request)
            except BrainError as exc:
                retries += 1
                if retries > self._settings.max_retries:
                    log.error(
                        "inference failed: exhausted retries retries=%d total_latency_ms=%d error=%s",
                        retries,
                        int((time.monotonic() - start) * 1000),
                        exc,
                    )
                    raise Exhausted(retries, str(exc)) from exc
                delay_ms = min(
                    self._settings.base_retry_delay_ms * 2 ** (retries - 1),
                    _MAX_RETRY_DELAY_MS,
                )
                log.warning(
                    "inference failed, retrying retry=%d max_retries=%d delay_ms=%d error=%s",
                    retries,
                    self._settings.max_retries,
                    delay_ms,
                    exc,
                )
                await asyncio.sleep(delay_ms / 1000)
                continue

            usage = response.usage
            log.info(
                "inference completed successfully model=%s input_tokens=%d output_tokens=%d "
                "latency_ms=%d retries=%d content_blocks=%d stop_reason=%s",
                response.model,
                usage.input_tokens if usage else 0,
                usage.output_tokens if usage else 0,
                int((time.monotonic() - start) * 1000),
                retries,
                len(response.content),
                response.stop_reason,
            )
            return response

    async def _send_request(self, request: MessageRequest) -> MessageResponse:
        url = f"{self._settings.endpoint.rstrip('/')}/v1/messages"
        log.debug("sending HTTP request url=%s", url)
        headers = {
            "Authorization": f"Bearer {self._settings.api_key}",
            "anthropic-version": "2023-06-01",
            "Content-Type": "application/json",
        }
        try:
            response = await self._client.post(url, headers=headers, json=request.to_dict())
        except httpx.HTTPError as exc:
            raise NetworkError(str(exc)) from exc

        status = response.status_code
        log.debug("received HTTP response status=%d", status)
        body = response.text

        if response.is_success:
            preview = body[:_PREVIEW_CHARS] + "..." if len(body) > _PREVIEW_CHARS else body
            log.debug("response body received preview=%s", preview)
            try:
                return MessageResponse.from_dict(json.loads(body))
            except (ValueError, TypeError) as exc:
                raise SerializationError(str(exc)) from exc
        if status == 401:
            raise AuthenticationFailed(body)
        if status == 400:
            raise InvalidRequest(body)
        if status == 402:
            raise InsufficientBalance(body)
        if response.is_server_error:
            raise ModelError(body)
        status_text = f"{status} {response.reason_phrase}".strip()
        raise InvalidRequest(f"HTTP {status_text}: {body}")

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()