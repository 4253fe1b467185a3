"""Tests for Settings and DecoderConfig."""

from pathlib import Path

import pytest

from src.config import Settings
from src.lemur.config import DecoderConfig
from src.lemur.errors import ConfigError


class TestDefaults:
    def test_default_empty_messages_limit(self):
        assert Settings().empty_messages_limit == 300

    def test_default_markers(self):
        s = Settings()
        assert s.stream_data_prefix == "data: "
        assert s.stream_error_prefix == 'data: {"error":'
        assert s.stream_done_marker == "[DONE]"

    def test_default_root_parent_id(self):
        assert Settings().root_parent_id == "chatcmpl-start"

    def test_default_database_path(self):
        assert Settings().database_path == Path("data/lemur.db")

    def test_default_api_key_empty(self):
        assert Settings().lemur_api_key == ""


class TestGetWindowSize:
    def test_zero_means_unlimited(self):
        assert Settings(conversation_window_size=0).get_window_size() is None

    def test_negative_means_unlimited(self):
        assert Settings(conversation_window_size=-5).get_window_size() is None

    def test_positive_window(self):
        assert Settings(conversation_window_size=20).get_window_size() == 20


class TestGetStreamUrl:
    def test_joins_with_single_slash(self):
        s = Settings(lemur_base_url="http://host/api/", lemur_stream_path="/chat/stream")
        assert s.get_stream_url() == "http://host/api/chat/stream"

    def test_adds_missing_slash(self):
        s = Settings(lemur_base_url="http://host/api", lemur_stream_path="chat/stream")
        assert s.get_stream_url() == "http://host/api/chat/stream"


class TestDecoderConfig:
    def test_defaults(self):
        cfg = DecoderConfig()
        assert cfg.empty_messages_limit == 300
        assert cfg.sub_frame_separator == "\n\n"

    @pytest.mark.parametrize("limit", [0, -1])
    def test_rejects_non_positive_limit(self, limit):
        with pytest.raises(ConfigError):
            DecoderConfig(empty_messages_limit=limit)

    def test_rejects_non_positive_buffer(self):
        with pytest.raises(ConfigError):
            DecoderConfig(error_buffer_limit=0)

    @pytest.mark.parametrize("field", ["data_prefix", "error_prefix", "done_marker"])
    def test_rejects_empty_markers(self, field):
        with pytest.raises(ConfigError, match=field):
            DecoderConfig(**{field: ""})

    def test_from_settings(self):
        s = Settings(empty_messages_limit=12, stream_done_marker="[END]", error_buffer_limit=64)
        cfg = DecoderConfig.from_settings(s)
        assert cfg.empty_messages_limit == 12
        assert cfg.done_marker == "[END]"
        assert cfg.error_buffer_limit == 64

    def test_from_settings_validates(self):
        with pytest.raises(ConfigError):
            DecoderConfig.from_settings(Settings(empty_messages_limit=0))
