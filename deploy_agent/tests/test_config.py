from __future__ import annotations

import logging
from pathlib import Path

import pytest

from deploy_agent.config import (
    HOOK_ASSOCIATIONS_KEY,
    AgentSettings,
    associations_from_properties,
    parse_hook_associations,
)
from deploy_agent.domain.errors import ConfigurationError
from deploy_agent.utils import logging as log_utils

_ENV_VARS = (
    "DEPLOY_AGENT_DATA_DIR",
    "DEPLOY_AGENT_CLIENT_ID",
    "DEPLOY_AGENT_DOWNLOADS_DIR",
    "DEPLOY_AGENT_PACKAGES_DIR",
    "DEPLOY_AGENT_VERIFICATION_DIR",
    "DEPLOY_AGENT_HOOK_ASSOCIATIONS",
    "DEPLOY_AGENT_NOTIFICATION_LIMIT",
    "DEPLOY_AGENT_TLS_CA_BUNDLE",
    "DEPLOY_AGENT_TLS_CLIENT_CERT",
    "DEPLOY_AGENT_TLS_CLIENT_KEY",
    "DEPLOY_AGENT_TLS_INSECURE",
    "DEPLOY_AGENT_LOG_LEVEL",
    "DEPLOY_AGENT_DEBUG",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_parse_hook_associations_formats():
    text = """
    # comment
    fw=firmware-hook
    ! also a comment
    ui : ui-hook;  app=app-hook
    empty=
    """
    assert parse_hook_associations(text) == {"fw": "firmware-hook", "ui": "ui-hook", "app": "app-hook"}
    assert parse_hook_associations(None) == {}


@pytest.mark.parametrize("text", ["no-separator", "=hook"])
def test_parse_hook_associations_rejects_bad_entries(text):
    with pytest.raises(ValueError):
        parse_hook_associations(text)


def test_associations_from_properties(caplog):
    assert associations_from_properties({HOOK_ASSOCIATIONS_KEY: "fw=hook"}) == {"fw": "hook"}
    assert associations_from_properties(None) == {}
    with caplog.at_level(logging.WARNING):
        assert associations_from_properties({HOOK_ASSOCIATIONS_KEY: "broken"}) == {}
    assert "Failed to parse hook associations" in caplog.text


def test_from_env_uses_data_dir_layout(monkeypatch, tmp_path):
    monkeypatch.setenv("DEPLOY_AGENT_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("DEPLOY_AGENT_CLIENT_ID", "gateway-7")
    monkeypatch.setenv("DEPLOY_AGENT_PACKAGES_DIR", str(tmp_path / "apps"))
    monkeypatch.setenv("DEPLOY_AGENT_HOOK_ASSOCIATIONS", "fw=hook")
    monkeypatch.setenv("DEPLOY_AGENT_NOTIFICATION_LIMIT", "20")

    settings = AgentSettings.from_env()

    assert settings.client_id == "gateway-7"
    assert settings.downloads_dir == tmp_path / "downloads"
    assert settings.packages_dir == tmp_path / "apps"
    assert settings.verification_dir == tmp_path / "verification"
    assert settings.hook_associations == "fw=hook"
    assert settings.notification_limit == 20
    assert settings.tls.verify is True


def test_from_env_tls(monkeypatch, tmp_path):
    monkeypatch.setenv("DEPLOY_AGENT_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("DEPLOY_AGENT_TLS_CA_BUNDLE", "/etc/ca.pem")
    monkeypatch.setenv("DEPLOY_AGENT_TLS_CLIENT_CERT", "/etc/agent.pem")
    monkeypatch.setenv("DEPLOY_AGENT_TLS_CLIENT_KEY", "/etc/agent.key")

    tls = AgentSettings.from_env().tls

    assert tls.verify == str(Path("/etc/ca.pem"))
    assert tls.cert == (str(Path("/etc/agent.pem")), str(Path("/etc/agent.key")))


def test_tls_key_without_cert_is_rejected(monkeypatch, tmp_path):
    monkeypatch.setenv("DEPLOY_AGENT_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("DEPLOY_AGENT_TLS_CLIENT_KEY", "/etc/agent.key")
    with pytest.raises(ConfigurationError):
        AgentSettings.from_env()


@pytest.mark.parametrize(
    "name, value",
    [
        ("DEPLOY_AGENT_DOWNLOADS_DIR", "   "),
        ("DEPLOY_AGENT_NOTIFICATION_LIMIT", "many"),
        ("DEPLOY_AGENT_NOTIFICATION_LIMIT", "0"),
    ],
)
def test_from_env_rejects_invalid_values(monkeypatch, tmp_path, name, value):
    monkeypatch.setenv("DEPLOY_AGENT_DATA_DIR", str(tmp_path))
    monkeypatch.setenv(name, value)
    with pytest.raises(ConfigurationError) as excinfo:
        AgentSettings.from_env()
    assert name in excinfo.value.message


def test_settings_require_client_id(tmp_path):
    with pytest.raises(ConfigurationError):
        AgentSettings.for_data_dir(tmp_path, client_id=" ")


def test_log_level_from_env():
    root = logging.getLogger()
    http = logging.getLogger("urllib3")
    saved = (root.level, http.level)
    try:
        assert log_utils.configure_root(logging.WARNING, environ={}) == logging.WARNING
        assert log_utils.configure_root(environ={"DEPLOY_AGENT_DEBUG": "yes"}) == logging.DEBUG
        assert http.level == logging.DEBUG
        env = {"DEPLOY_AGENT_DEBUG": "yes", "DEPLOY_AGENT_LOG_LEVEL": "error"}
        assert log_utils.configure_root(environ=env) == logging.ERROR
        assert root.level == logging.ERROR
        assert http.level == logging.WARNING
        assert log_utils.configure_root("info", environ={"DEPLOY_AGENT_LOG_LEVEL": "bogus"}) == logging.INFO
    finally:
        root.setLevel(saved[0])
        http.setLevel(saved[1])
