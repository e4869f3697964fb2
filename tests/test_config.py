"""Tests for TrackerConfig."""

import dataclasses
import re

import pytest

from outboundiq.config import DEFAULT_ENDPOINT, TrackerConfig


class TestDefaults:
    def test_documented_defaults(self):
        config = TrackerConfig.from_options({"api_key": "k"})
        assert config.endpoint == DEFAULT_ENDPOINT
        assert config.batch_size == 10
        assert config.flush_interval == 5000
        assert config.timeout == 5000
        assert config.ignore_patterns == ()
        assert config.auto_track is True
        assert config.debug is False

    def test_seconds_properties(self):
        config = TrackerConfig(api_key="k", timeout=2500, flush_interval=100)
        assert config.timeout_seconds == 2.5
        assert config.flush_interval_seconds == 0.1

    def test_none_means_default(self):
        config = TrackerConfig.from_options({"api_key": "k", "batch_size": None})
        assert config.batch_size == 10

    def test_keyword_overrides_win(self):
        config = TrackerConfig.from_options({"api_key": "k", "batch_size": 3}, batch_size=7)
        assert config.batch_size == 7

    def test_ignore_patterns_stored_as_tuple(self):
        pattern = re.compile("health")
        config = TrackerConfig(api_key="k", ignore_patterns=["/ping", pattern])
        assert config.ignore_patterns == ("/ping", pattern)

    def test_frozen(self):
        config = TrackerConfig(api_key="k")
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.batch_size = 99


class TestValidation:
    def test_api_key_required(self):
        with pytest.raises(ValueError, match="api_key"):
            TrackerConfig.from_options({})

    def test_unknown_option(self):
        with pytest.raises(ValueError, match="batchsize"):
            TrackerConfig.from_options({"api_key": "k", "batchsize": 5})

    @pytest.mark.parametrize("option, value", [
        ("batch_size", 0),
        ("flush_interval", 0),
        ("timeout", -1),
        ("endpoint", "ftp://example.com"),
    ])
    def test_out_of_range(self, option, value):
        with pytest.raises(ValueError):
            TrackerConfig.from_options({"api_key": "k", option: value})

    def test_bad_ignore_pattern(self):
        with pytest.raises(ValueError, match="ignore_patterns"):
            TrackerConfig.from_options({"api_key": "k", "ignore_patterns": [42]})

    def test_with_options_validates(self):
        config = TrackerConfig(api_key="k")
        assert config.with_options(batch_size=20).batch_size == 20
        with pytest.raises(ValueError):
            config.with_options(batch_size=0)


class TestFromEnv:
    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("OUTBOUNDIQ_KEY", "env-key")
        monkeypatch.setenv("OUTBOUNDIQ_ENDPOINT", "http://localhost:8000/api/metric")
        monkeypatch.setenv("OUTBOUNDIQ_DEBUG", "true")
        monkeypatch.setenv("OUTBOUNDIQ_BATCH_SIZE", "25")
        monkeypatch.setenv("OUTBOUNDIQ_FLUSH_INTERVAL", "1000")
        monkeypatch.setenv("OUTBOUNDIQ_TIMEOUT", "3000")

        config = TrackerConfig.from_env()
        assert config.api_key == "env-key"
        assert config.endpoint == "http://localhost:8000/api/metric"
        assert config.debug is True
        assert config.batch_size == 25
        assert config.flush_interval == 1000
        assert config.timeout == 3000

    def test_overrides_win_over_environment(self, monkeypatch):
        monkeypatch.setenv("OUTBOUNDIQ_KEY", "env-key")
        monkeypatch.setenv("OUTBOUNDIQ_BATCH_SIZE", "25")
        assert TrackerConfig.from_env(batch_size=2).batch_size == 2

    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("OUTBOUNDIQ_KEY", raising=False)
        with pytest.raises(ValueError):
            TrackerConfig.from_env()

    def test_non_integer(self, monkeypatch):
        monkeypatch.setenv("OUTBOUNDIQ_KEY", "env-key")
        monkeypatch.setenv("OUTBOUNDIQ_TIMEOUT", "soon")
        with pytest.raises(ValueError, match="OUTBOUNDIQ_TIMEOUT"):
            TrackerConfig.from_env()


def test_to_dict_masks_api_key():
    snapshot = TrackerConfig(api_key="sk_live_1234567890").to_dict()
    assert snapshot["api_key"] == "sk_l...7890"
    assert snapshot["batch_size"] == 10
