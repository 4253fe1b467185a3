"""Async Lemur chat client that opens a streaming completion."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

import httpx

from src.config import settings
from src.lemur.accumulator import ErrorAccumulator
from src.lemur.config import DecoderConfig
from src.lemur.errors import ConfigError, TransportError, UpstreamAPIError
from src.lemur.stream import StreamDecoder

if TYPE_CHECKING:
    from collections.abc import Sequence

    from src.config import Settings
    from src.conversation.models import Message

logger = logging.getLogger(__name__)

SYSTEM_SETTING_ID = "LEMUR_AI_SYSTEM_SETTING"


def build_lemur_messages(
    history: Sequence[Message], system_prompt: str = ""
) -> list[dict[str, Any]]:
    """Convert oldest-first history into Lemur's message list.

    The list always opens with the system-setting entry, as the upstream
    expects.  History entries are flagged for content checking.
    """
    messages: list[dict[str, Any]] = [
        {
            "content": system_prompt,
            "id": SYSTEM_SETTING_ID,
            "isSensitive": False,
            "needCheck": False,
            "role": "system",
        }
    ]
    for msg in history:
        messages.append(
            {
                "content": msg.content,
                "isSensitive": False,
                "needCheck": True,
                "role": str(msg.role),
            }
        )
    return messages


def build_request_body(history: Sequence[Message], system_prompt: str = "") -> dict[str, str]:
    """Lemur takes the message list as a JSON-encoded string field."""
    messages = build_lemur_messages(history, system_prompt)
    return {"messages": json.dumps(messages, ensure_ascii=False)}


class LemurClient:
    """Opens streaming completions against the Lemur API.

    Pass an explicit *http_client* to share a connection pool (or to inject
    a mock transport in tests); otherwise the client owns one and closes it
    in ``aclose()``.
    """

    def __init__(
        self,
        api_key: str,
        *,
        url: str,
        system_prompt: str = "",
        timeout: float = 30.0,
        decoder_config: DecoderConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise ConfigError("Missing LEMUR_API_KEY")
        if not url:
            raise ConfigError("Missing Lemur stream URL")
        self._api_key = api_key
        self._url = url
        self._system_prompt = system_prompt
        self._decoder_config = decoder_config or DecoderConfig()
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(
        cls, cfg: Settings = settings, http_client: httpx.AsyncClient | None = None
    ) -> LemurClient:
        return cls(
            cfg.lemur_api_key,
            url=cfg.get_stream_url(),
            system_prompt=cfg.lemur_system_prompt,
            timeout=cfg.http_timeout,
            decoder_config=DecoderConfig.from_settings(cfg),
            http_client=http_client,
        )

    async def open_stream(self, history: Sequence[Message]) -> StreamDecoder:
        """POST the conversation and return a decoder over the response body.

        The caller owns the returned decoder and must ``aclose()`` it.
        """
        body = build_request_body(history, self._system_prompt)
        request = self._http.build_request(
            "POST",
            self._url,
            json=body,
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Accept": "text/event-stream",
            },
        )
        try:
            response = await self._http.send(request, stream=True)
        except httpx.TransportError as exc:
            logger.warning("Lemur request failed: %s", exc)
            raise TransportError(f"opening upstream stream failed: {exc}") from exc

        if response.status_code >= 400:
            raise await self._error_from_response(response)

        logger.info("Opened Lemur stream (%d messages)", len(history))
        return StreamDecoder.from_response(response, self._decoder_config)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> LemurClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _error_from_response(self, response: httpx.Response) -> UpstreamAPIError:
        """Read an error response body and turn it into ``UpstreamAPIError``.

        At most ``error_buffer_limit`` bytes of the body are read.
        """
        limit = self._decoder_config.error_buffer_limit
        raw = b""
        try:
            async for chunk in response.aiter_bytes():
                raw += chunk
                if len(raw) >= limit:
                    break
        except httpx.HTTPError as exc:
            logger.debug("Reading Lemur error body failed: %s", exc)
        finally:
            await response.aclose()
        raw = raw[:limit]

        accumulator = ErrorAccumulator(max_bytes=limit)
        accumulator.write(raw.strip().removeprefix(b"data: "))
        error = accumulator.parse_error(status_code=response.status_code)
        if error is None:
            text = raw.decode("utf-8", errors="replace")[:500]
            error = UpstreamAPIError(
                text or response.reason_phrase, status_code=response.status_code
            )
        logger.warning("Lemur returned HTTP %d: %s", response.status_code, error.message)
        return error
