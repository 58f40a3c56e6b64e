"""Unit tests for the YAML configuration loader."""

from pathlib import Path

import pytest
import yaml

from speak2doc.config import Speak2DocConfig
from speak2doc.models.recognition import BackendSelection


def write_config(directory, data) -> str:
    path = Path(directory) / "speak2doc.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return str(path)


@pytest.fixture
def full_config(tmp_path):
    return {
        "recognition": {
            "backend": "whisper",
            "language": "de-DE",
            "sample_rate": 16000,
            "buffer_size": 2048,
            "stop_timeout": 2.5,
        },
        "providers": {
            "endpoints": {"whisper": "http://stt.local/api/whisper"},
            "realtime": {"token_url": "http://stt.local/token", "word_boost": ["ibuprofen"]},
        },
        "credentials": {"assemblyai_api_key_env": "TEST_ASSEMBLYAI_KEY"},
        "google_cloud": {"credentials_path": "creds/google.json"},
        "chat": {"url": "http://chat.local/api/openai"},
        "logging": {"level": "DEBUG", "file_path": "logs/test.log"},
    }


@pytest.mark.unit
class TestSpeak2DocConfig:

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            Speak2DocConfig(str(tmp_path / "absent.yaml"))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("recognition: [unclosed", encoding="utf-8")
        with pytest.raises(ValueError):
            Speak2DocConfig(str(path))

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        with pytest.raises(ValueError):
            Speak2DocConfig(str(path))

    def test_dot_path_get_and_set(self, tmp_path, full_config):
        config = Speak2DocConfig(write_config(tmp_path, full_config))

        assert config.get("recognition.language") == "de-DE"
        assert config.get("recognition.missing", "fallback") == "fallback"
        config.set("chat.system_prompt", "Be concise.")
        assert config.get_chat_prompt() == "Be concise."
        assert config.get_chat_url() == "http://chat.local/api/openai"

    def test_relative_paths_resolved_against_config_dir(self, tmp_path, full_config):
        config = Speak2DocConfig(write_config(tmp_path, full_config))

        assert config.get("google_cloud.credentials_path") == str(tmp_path / "creds/google.json")
        assert config.get("logging.file_path") == str(tmp_path / "logs/test.log")

    def test_recognition_settings(self, tmp_path, full_config, monkeypatch):
        monkeypatch.setenv("TEST_ASSEMBLYAI_KEY", "from-env")
        config = Speak2DocConfig(write_config(tmp_path, full_config))

        settings = config.recognition_settings()

        assert settings.backend == BackendSelection.WHISPER
        assert settings.language == "de-DE"
        assert settings.buffer_size == 2048
        assert settings.stop_timeout == 2.5
        assert settings.endpoint_for(BackendSelection.WHISPER) == "http://stt.local/api/whisper"
        assert settings.endpoint_for(BackendSelection.GOOGLE) == "http://localhost:3000/api/google/transcribe"
        assert settings.token_url == "http://stt.local/token"
        assert settings.word_boost == ("ibuprofen",)
        assert settings.assemblyai_api_key == "from-env"
        assert settings.google_credentials_path == str((tmp_path / "creds/google.json").absolute())

    def test_inline_secret_wins_over_env(self, tmp_path, full_config, monkeypatch):
        monkeypatch.setenv("TEST_ASSEMBLYAI_KEY", "from-env")
        full_config["credentials"]["assemblyai_api_key"] = "inline"
        config = Speak2DocConfig(write_config(tmp_path, full_config))

        assert config.get_secret("assemblyai_api_key") == "inline"

    def test_unset_env_secret(self, tmp_path, full_config, monkeypatch):
        monkeypatch.delenv("TEST_ASSEMBLYAI_KEY", raising=False)
        config = Speak2DocConfig(write_config(tmp_path, full_config))

        assert config.recognition_settings().assemblyai_api_key is None

    def test_defaults_for_minimal_config(self, tmp_path):
        config = Speak2DocConfig(write_config(tmp_path, {"recognition": {"backend": "native"}}))

        settings = config.recognition_settings()

        assert settings.backend == BackendSelection.NATIVE_STREAMING
        assert settings.sample_rate == 16000
        assert settings.buffer_size == 4096
        assert settings.google_credentials_path is None

    def test_unknown_backend(self, tmp_path):
        config = Speak2DocConfig(write_config(tmp_path, {"recognition": {"backend": "carrier-pigeon"}}))
        with pytest.raises(ValueError):
            config.recognition_settings()
