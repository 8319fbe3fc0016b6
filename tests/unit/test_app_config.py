"""Unit tests for the app_config module."""
import os
from unittest.mock import MagicMock, patch

import pytest
import yaml

from mod_translator.app_config import (
    DEFAULT_API_URL,
    DEFAULT_BATCH_SIZE,
    DEFAULT_CONCURRENCY,
    DEFAULT_RETRY_COUNT,
    api_base_url,
    load_app_config,
    normalize_api_url,
    validate_config,
)
from tests.fakes import make_config


class TestNormalizeApiUrl:

    @pytest.mark.parametrize("raw, expected", [
        ("https://api.openai.com", "https://api.openai.com/v1/chat/completions"),
        ("https://host/v1/", "https://host/v1/chat/completions"),
        ("https://host/v1/chat/completions?api-version=1", "https://host/v1/chat/completions"),
        ("http://localhost:8080/openai", "http://localhost:8080/openai/v1/chat/completions"),
        ("  https://host/v1  ", "https://host/v1/chat/completions"),
    ])
    def test_normalizes_to_chat_completions(self, raw, expected):
        assert normalize_api_url(raw) == expected

    @pytest.mark.parametrize("raw", ["", "   ", "ftp://host/v1", "not a url", "https://"])
    def test_rejects_invalid_urls(self, raw):
        assert normalize_api_url(raw) is None

    def test_base_url_drops_the_completions_suffix(self):
        assert api_base_url("https://host/v1/chat/completions") == "https://host/v1"


class TestValidateConfig:

    def test_valid_config_is_normalized(self, tmp_path):
        config = make_config(str(tmp_path), api_url="https://host", api_key=" key ", model_name=" gpt ")

        result = validate_config(config)

        assert result.success
        assert config.api_url == "https://host/v1/chat/completions"
        assert config.api_key == "key"
        assert config.model_name == "gpt"

    @pytest.mark.parametrize("overrides, message", [
        ({"api_url": ""}, "Translator API URL is empty. Configure api.api_url."),
        ({"api_url": "ftp://host"}, "Translator API URL is invalid. Configure a valid http/https endpoint."),
        ({"api_key": " "}, "Translator API key is empty. Set TRANSLATOR_API_KEY or OPENAI_API_KEY."),
        ({"model_name": ""}, "Translator model is empty. Configure api.model_name."),
        ({"batch_size": 10}, "Translator batch size is invalid. Configure a value between 20 and 2000."),
        ({"concurrency": 17}, "Translator concurrency is invalid. Configure a value between 1 and 16."),
        ({"retry_count": -1}, "Translator retry count is invalid. Configure a value between 0 and 10."),
    ])
    def test_invalid_values_fail_with_a_message(self, tmp_path, overrides, message):
        config = make_config(str(tmp_path), **overrides)

        result = validate_config(config)

        assert not result.success
        assert result.message == message

    def test_failed_validation_leaves_config_untouched(self, tmp_path):
        config = make_config(str(tmp_path), api_url="https://host", api_key="")
        validate_config(config)
        assert config.api_url == "https://host"


class TestLoadAppConfig:

    def test_load_config_with_valid_yaml_file(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.dump({
            "exports_root": str(tmp_path / "out"),
            "snapshot_path": "snapshots/mod.json",
            "dry_run": True,
            "api": {"api_url": "https://llm.example.com/v1", "model_name": "gpt-4o", "request_timeout": 30},
            "batching": {"batch_size": 50, "concurrency": 2, "retry_count": 1, "max_batch_chars": 9000},
            "logging": {"log_level": "DEBUG", "log_file_path": ""},
        }), encoding="utf-8")

        env = {"TRANSLATOR_CONFIG_FILE": str(config_file), "OPENAI_API_KEY": "sk-env"}
        with patch("mod_translator.app_config.setup_logger", return_value=MagicMock()) as mock_logger:
            with patch.dict(os.environ, env, clear=True):
                config = load_app_config()

        mock_logger.assert_called_once_with("DEBUG", "", True)
        assert config.exports_root == str(tmp_path / "out")
        assert config.snapshot_path == os.path.join(config.project_root, "snapshots/mod.json")
        assert config.dry_run is True
        assert config.api_url == "https://llm.example.com/v1"
        assert config.api_key == "sk-env"
        assert config.model_name == "gpt-4o"
        assert config.request_timeout == 30.0
        assert config.batch_size == 50
        assert config.concurrency == 2
        assert config.retry_count == 1
        assert config.max_batch_chars == 9000

    def test_environment_overrides_yaml(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.dump({"api": {"api_key": "from-yaml", "model_name": "gpt-4o"}}),
                               encoding="utf-8")

        env = {
            "TRANSLATOR_CONFIG_FILE": str(config_file),
            "TRANSLATOR_API_KEY": "from-env",
            "OPENAI_API_KEY": "openai-env",
            "TRANSLATOR_API_URL": "https://proxy.example.com",
            "TRANSLATOR_MODEL": "gpt-4.1-mini",
        }
        with patch("mod_translator.app_config.setup_logger", return_value=MagicMock()):
            with patch.dict(os.environ, env, clear=True):
                config = load_app_config()

        assert config.api_key == "from-env"
        assert config.api_url == "https://proxy.example.com"
        assert config.model_name == "gpt-4.1-mini"

    def test_load_config_with_missing_file_uses_defaults(self, tmp_path, capsys):
        env = {"TRANSLATOR_CONFIG_FILE": str(tmp_path / "missing.yaml")}
        with patch("mod_translator.app_config.setup_logger", return_value=MagicMock()):
            with patch.dict(os.environ, env, clear=True):
                config = load_app_config()

        assert "not found" in capsys.readouterr().err
        assert config.api_url == DEFAULT_API_URL
        assert config.api_key == ""
        assert config.batch_size == DEFAULT_BATCH_SIZE
        assert config.concurrency == DEFAULT_CONCURRENCY
        assert config.retry_count == DEFAULT_RETRY_COUNT
        assert config.dry_run is False

    def test_invalid_yaml_uses_defaults(self, tmp_path, capsys):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("api: [unclosed", encoding="utf-8")

        with patch("mod_translator.app_config.setup_logger", return_value=MagicMock()):
            with patch.dict(os.environ, {"TRANSLATOR_CONFIG_FILE": str(config_file)}, clear=True):
                config = load_app_config()

        assert "Invalid YAML" in capsys.readouterr().err
        assert config.model_name == "gpt-4o-mini"
