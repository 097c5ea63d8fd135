"""Tests for settings loading."""
import json

import pytest

from ado_core.client import AdoApiClient
from ado_core.config import ConfigurationError, Settings, get_settings, load_settings


def write_config(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class TestEnvironment:
    """Test loading from ADO_* environment variables."""

    def test_env_settings(self, monkeypatch):
        monkeypatch.setenv("ADO_ORGANIZATION", "contoso")
        monkeypatch.setenv("ADO_PAT", "env-pat")
        monkeypatch.setenv("ADO_PROJECT", "Fabrikam")
        monkeypatch.setenv("ADO_API_URL", "https://ado.example.com/")
        monkeypatch.setenv("ADO_API_MAX_RETRIES", "5")
        monkeypatch.setenv("ADO_API_DELAY_MS", "250")
        monkeypatch.setenv("ADO_API_BACKOFF_FACTOR", "3")

        settings = load_settings()
        assert settings.organization == "contoso"
        assert settings.project == "Fabrikam"
        assert settings.pat.get_secret_value() == "env-pat"
        assert settings.api_url == "https://ado.example.com"
        assert settings.max_retries == 5
        assert settings.delay_ms == 250
        assert settings.backoff_factor == 3.0

    def test_defaults(self, monkeypatch):
        monkeypatch.setenv("ADO_ORGANIZATION", "contoso")
        monkeypatch.setenv("ADO_PAT", "env-pat")

        settings = load_settings()
        assert settings.project is None
        assert settings.api_url == "https://dev.azure.com"
        assert settings.api_version == "7.0"
        assert (settings.max_retries, settings.delay_ms, settings.backoff_factor) == (3, 1000, 2.0)

    def test_invalid_value_is_configuration_error(self, monkeypatch):
        monkeypatch.setenv("ADO_ORGANIZATION", "contoso")
        monkeypatch.setenv("ADO_PAT", "env-pat")
        monkeypatch.setenv("ADO_API_MAX_RETRIES", "0")

        with pytest.raises(ConfigurationError) as exc_info:
            load_settings()
        assert "max_retries" in str(exc_info.value).lower()

    def test_get_settings_is_cached(self, monkeypatch):
        monkeypatch.setenv("ADO_ORGANIZATION", "contoso")
        monkeypatch.setenv("ADO_PAT", "env-pat")
        assert get_settings() is get_settings()


class TestConfigFile:
    """Test the config/azuredevops.json fallback."""

    def test_nested_file_layout(self, tmp_path):
        path = write_config(tmp_path / "azuredevops.json", {
            "organization": "contoso",
            "project": "Fabrikam",
            "credentials": {"pat": "file-pat"},
            "api": {"baseUrl": "https://dev.azure.com", "version": "7.1", "retry": {"maxRetries": 4, "delayMs": 10}},
        })

        settings = load_settings(path)
        assert settings.organization == "contoso"
        assert settings.pat.get_secret_value() == "file-pat"
        assert settings.api_version == "7.1"
        assert settings.max_retries == 4
        assert settings.delay_ms == 10
        assert settings.backoff_factor == 2.0

    def test_default_location(self, tmp_path, monkeypatch):
        (tmp_path / "config").mkdir()
        write_config(tmp_path / "config" / "azuredevops.json", {
            "organization": "contoso", "credentials": {"pat": "file-pat"},
        })
        monkeypatch.chdir(tmp_path)
        assert load_settings().organization == "contoso"

    def test_missing_configuration(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        with pytest.raises(ConfigurationError) as exc_info:
            load_settings()
        assert "ADO_ORGANIZATION" in str(exc_info.value)

    def test_missing_token_in_file(self, tmp_path):
        path = write_config(tmp_path / "azuredevops.json", {"organization": "contoso"})
        with pytest.raises(ConfigurationError) as exc_info:
            load_settings(path)
        assert "pat" in str(exc_info.value)

    def test_unparseable_file(self, tmp_path):
        path = tmp_path / "azuredevops.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            load_settings(path)


class TestSettings:
    """Test Settings helpers."""

    def test_redacted_masks_token(self):
        settings = Settings(organization="contoso", pat="very-secret")
        data = settings.redacted()
        assert data["pat"] == "***"
        assert "very-secret" not in str(data)
        assert "very-secret" not in repr(settings)

    def test_blank_project_is_none(self):
        assert Settings(organization="contoso", pat="x", project="").project is None

    @pytest.mark.asyncio
    async def test_client_from_settings(self):
        settings = Settings(organization="contoso", pat="x", project="Fabrikam", max_retries=2, delay_ms=5)
        async with AdoApiClient.from_settings(settings) as client:
            assert client.default_project == "Fabrikam"
            assert client.retry.max_retries == 2
            assert client.retry.delay_ms == 5
            assert client.resolve_url("projects") == "https://dev.azure.com/contoso/_apis/projects"
