"""tests/test_config.py — environment and .env configuration"""
from pathlib import Path

import pytest

from dast_scanner.config import DEFAULT_TARGET, ScanConfig
from dast_scanner.errors import ConfigError


def test_defaults():
    config = ScanConfig.from_env()
    assert config.target == DEFAULT_TARGET
    assert config.headless is True
    assert config.skip_auth is False
    assert config.report_format == "html"
    assert config.sast_tool == "sonarqube"
    assert config.zap_openapi_url is None


def test_environment(monkeypatch):
    monkeypatch.setenv("TARGET_ENDPOINT", "http://app.local:8000/")
    monkeypatch.setenv("HEADLESS", "false")
    monkeypatch.setenv("SKIP_AUTH", "true")
    monkeypatch.setenv("REPORT_FORMAT", "JSON")
    monkeypatch.setenv("REQUEST_TIMEOUT", "3.5")
    config = ScanConfig.from_env()
    assert config.target == "http://app.local:8000"
    assert config.headless is False
    assert config.skip_auth is True
    assert config.report_format == "json"
    assert config.timeout == 3.5


def test_dotenv_does_not_override_environment(monkeypatch, tmp_path):
    (tmp_path / ".env").write_text("TARGET_ENDPOINT=http://from-dotenv\nSAST_TOOL=semgrep\n")
    monkeypatch.setenv("TARGET_ENDPOINT", "http://from-env")
    config = ScanConfig.from_env()
    assert config.target == "http://from-env"
    assert config.sast_tool == "semgrep"


def test_explicit_env_file(tmp_path):
    env_file = tmp_path / "scan.env"
    env_file.write_text("SONARQUBE_TOKEN=squ_123\n")
    config = ScanConfig.from_env(env_file=env_file)
    assert config.sonarqube_token == "squ_123"


def test_overrides_win_unless_none(monkeypatch):
    monkeypatch.setenv("TARGET_ENDPOINT", "http://from-env")
    config = ScanConfig.from_env(target="http://override", report_format=None)
    assert config.target == "http://override"
    assert config.report_format == "html"
    assert config.report_dir == Path("reports/dast")


@pytest.mark.parametrize("kwargs", [
    {"report_format": "pdf"},
    {"zap_format": "docx"},
    {"sast_tool": "bandit"},
    {"timeout": 0},
])
def test_invalid_values(kwargs):
    with pytest.raises(ConfigError) as exc:
        ScanConfig(**kwargs)
    assert exc.value.exit_code == 2


def test_non_numeric_timeout(monkeypatch):
    monkeypatch.setenv("REQUEST_TIMEOUT", "soon")
    with pytest.raises(ConfigError):
        ScanConfig.from_env()
