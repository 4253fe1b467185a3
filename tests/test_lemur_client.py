"""Tests for LemurClient — request building and HTTP error mapping."""

import json

import httpx
import pytest
from lemur_frames import DONE, envelope, sub_frame

from src.config import Settings
from src.conversation.models import Message, Role
from src.lemur.client import (
    SYSTEM_SETTING_ID,
    LemurClient,
    build_lemur_messages,
    build_request_body,
)
from src.lemur.config import DecoderConfig
from src.lemur.errors import ConfigError, ErrorKind, TransportError, UpstreamAPIError
from src.lemur.stream import DecoderState, StreamDecoder

URL = "http://lemur.test/api/chat/stream"

HISTORY = [
    Message(role=Role.USER, content="hello"),
    Message(role=Role.ASSISTANT, content="hi"),
    Message(role=Role.USER, content="tell me a joke"),
]


def _client(handler, **kwargs) -> LemurClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return LemurClient("test-key-123", url=URL, http_client=http, **kwargs)


def _stream_body(*lines: str) -> bytes:
    return ("\n".join(lines) + "\n").encode()


# -- Request body ----------------------------------------------------------------


class TestBuildMessages:
    def test_starts_with_system_setting(self):
        messages = build_lemur_messages(HISTORY, "be brief")
        assert messages[0] == {
            "content": "be brief",
            "id": SYSTEM_SETTING_ID,
            "isSensitive": False,
            "needCheck": False,
            "role": "system",
        }

    def test_history_follows_in_order(self):
        messages = build_lemur_messages(HISTORY)
        assert [(m["role"], m["content"]) for m in messages[1:]] == [
            ("user", "hello"),
            ("assistant", "hi"),
            ("user", "tell me a joke"),
        ]
        assert all(m["needCheck"] for m in messages[1:])

    def test_body_encodes_messages_as_string(self):
        body = build_request_body(HISTORY)
        assert isinstance(body["messages"], str)
        assert len(json.loads(body["messages"])) == 4

    def test_body_keeps_non_ascii(self):
        body = build_request_body([Message(role=Role.USER, content="你好")])
        assert "你好" in body["messages"]


# -- Construction ------------------------------------------------------------------


class TestConstruction:
    def test_missing_api_key(self):
        with pytest.raises(ConfigError):
            LemurClient("", url=URL)

    def test_missing_url(self):
        with pytest.raises(ConfigError):
            LemurClient("test-key-123", url="")

    async def test_from_settings(self):
        cfg = Settings(
            lemur_api_key="from-settings-key",
            lemur_base_url="http://lemur.test/api",
            lemur_stream_path="/chat/stream",
            empty_messages_limit=5,
        )
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, content=_stream_body(DONE))

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        client = LemurClient.from_settings(cfg, http_client=http)
        decoder = await client.open_stream(HISTORY)
        await decoder.aclose()
        await http.aclose()

        assert seen["url"] == URL
        assert seen["auth"] == "Bearer from-settings-key"


# -- open_stream -------------------------------------------------------------------


async def test_open_stream_posts_conversation() -> None:
    captured: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["method"] = request.method
        captured["auth"] = request.headers["Authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, content=_stream_body(envelope(sub_frame("ok")), DONE))

    client = _client(handler, system_prompt="sys")
    decoder = await client.open_stream(HISTORY)

    assert isinstance(decoder, StreamDecoder)
    assert [c.delta async for c in decoder] == ["ok"]
    await decoder.aclose()
    await client.aclose()

    assert captured["method"] == "POST"
    assert captured["auth"] == "Bearer test-key-123"
    sent = json.loads(captured["body"]["messages"])
    assert sent[0]["content"] == "sys"
    assert sent[-1]["content"] == "tell me a joke"


async def test_open_stream_reassembles_packed_frames() -> None:
    body = _stream_body(
        envelope(sub_frame("Hel"), sub_frame("lo")),
        "",
        envelope(sub_frame(" world")),
        "",
        DONE,
    )
    client = _client(lambda request: httpx.Response(200, content=body))

    async with await client.open_stream(HISTORY) as decoder:
        text = "".join([c.delta async for c in decoder])

    assert text == "Hello world"


@pytest.mark.parametrize(
    ("status", "payload", "kind"),
    [
        (401, {"error": {"message": "bad key", "code": "invalid_api_key"}}, ErrorKind.UNAUTHORIZED),
        (429, {"error": {"message": "slow down"}}, ErrorKind.RATE_LIMITED),
        (500, {"error": {"message": "internal"}}, ErrorKind.SERVER),
        (400, {"error": {"message": "bad request"}}, ErrorKind.OTHER),
    ],
)
async def test_http_error_status_is_classified(status, payload, kind) -> None:
    client = _client(lambda request: httpx.Response(status, json=payload))

    with pytest.raises(UpstreamAPIError) as exc_info:
        await client.open_stream(HISTORY)

    assert exc_info.value.status_code == status
    assert exc_info.value.kind is kind
    assert exc_info.value.message == payload["error"]["message"]


async def test_http_error_with_plain_text_body() -> None:
    client = _client(lambda request: httpx.Response(502, text="Bad Gateway from proxy"))

    with pytest.raises(UpstreamAPIError) as exc_info:
        await client.open_stream(HISTORY)

    assert exc_info.value.message == "Bad Gateway from proxy"
    assert exc_info.value.kind is ErrorKind.SERVER


async def test_http_error_with_empty_body_uses_reason() -> None:
    client = _client(lambda request: httpx.Response(503))

    with pytest.raises(UpstreamAPIError) as exc_info:
        await client.open_stream(HISTORY)

    assert exc_info.value.message == "Service Unavailable"


async def test_error_body_read_is_capped() -> None:
    client = _client(
        lambda request: httpx.Response(500, content=b"x" * 10_000),
        decoder_config=DecoderConfig(error_buffer_limit=64),
    )

    with pytest.raises(UpstreamAPIError) as exc_info:
        await client.open_stream(HISTORY)

    assert exc_info.value.message == "x" * 64
    assert exc_info.value.status_code == 500


async def test_corrupt_gzip_stream_becomes_transport_error() -> None:
    async def garbage():
        yield b"not-gzip-at-all\n"

    client = _client(
        lambda request: httpx.Response(
            200, headers={"Content-Encoding": "gzip"}, content=garbage()
        )
    )

    async with await client.open_stream(HISTORY) as decoder:
        with pytest.raises(TransportError):
            await decoder.recv()
        assert decoder.state is DecoderState.FAILED


async def test_connection_failure_becomes_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(handler)
    with pytest.raises(TransportError, match="connection refused"):
        await client.open_stream(HISTORY)


async def test_owned_http_client_is_closed() -> None:
    client = LemurClient("test-key-123", url=URL)
    await client.aclose()
    assert client._http.is_closed


async def test_shared_http_client_is_left_open() -> None:
    http = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    async with LemurClient("test-key-123", url=URL, http_client=http):
        pass
    assert not http.is_closed
    await http.aclose()
