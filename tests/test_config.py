from pathlib import Path

import pytest

from config import DEFAULT_MAX_SESSIONS, gateway_config


ENV_KEYS = [
    "MAX_SESSIONS",
    "SESSION_IDLE_TIMEOUT_MS",
    "IDLE_SWEEP_INTERVAL",
    "PORT",
    "HOST",
    "AUTH_DATA_PATH",
    "GATEWAY_ADAPTER",
    "BRIDGE_URL",
    "BRIDGE_TOKEN",
    "SIGNOFF_TIMEOUT",
    "SEND_TIMEOUT",
    "SHUTDOWN_TIMEOUT",
    "RESUME_BACKOFF_BASE",
    "RESUME_BACKOFF_MAX",
    "LOG_LEVEL",
]


@pytest.fixture
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    cfg = gateway_config()

    assert cfg.max_sessions == DEFAULT_MAX_SESSIONS == 50
    assert cfg.idle_timeout_ms == 300_000
    assert cfg.idle_timeout == 300.0
    assert cfg.idle_sweep_interval == 60.0
    assert cfg.port == 3000
    assert cfg.host == "0.0.0.0"
    assert cfg.auth_data_path == Path("./.wwebjs_auth")
    assert cfg.adapter == "bridge"
    assert cfg.bridge_url == "http://127.0.0.1:3100"
    assert cfg.bridge_token is None
    assert cfg.log_level == "INFO"


def test_overrides(clean_env):
    clean_env.setenv("MAX_SESSIONS", "2")
    clean_env.setenv("SESSION_IDLE_TIMEOUT_MS", "1500")
    clean_env.setenv("IDLE_SWEEP_INTERVAL", "500ms")
    clean_env.setenv("PORT", "8080")
    clean_env.setenv("GATEWAY_ADAPTER", "Loopback")
    clean_env.setenv("BRIDGE_URL", "http://bridge:3100/")
    clean_env.setenv("BRIDGE_TOKEN", " secret ")
    clean_env.setenv("SIGNOFF_TIMEOUT", "3s")
    clean_env.setenv("LOG_LEVEL", "debug")

    cfg = gateway_config()

    assert cfg.max_sessions == 2
    assert cfg.idle_timeout == 1.5
    assert cfg.idle_sweep_interval == 0.5
    assert cfg.port == 8080
    assert cfg.adapter == "loopback"
    assert cfg.bridge_url == "http://bridge:3100"
    assert cfg.bridge_token == "secret"
    assert cfg.signoff_timeout == 3.0
    assert cfg.log_level == "DEBUG"


@pytest.mark.parametrize(
    ("key", "value", "attr", "expected"),
    [
        ("MAX_SESSIONS", "lots", "max_sessions", 50),
        ("MAX_SESSIONS", "0", "max_sessions", 50),
        ("SESSION_IDLE_TIMEOUT_MS", "-5", "idle_timeout", 300.0),
        ("PORT", "70000", "port", 3000),
        ("IDLE_SWEEP_INTERVAL", "soon", "idle_sweep_interval", 60.0),
        ("SEND_TIMEOUT", "0", "send_timeout", 30.0),
        ("GATEWAY_ADAPTER", "carrier-pigeon", "adapter", "bridge"),
    ],
)
def test_malformed_values_fall_back(clean_env, key, value, attr, expected):
    clean_env.setenv(key, value)

    assert getattr(gateway_config(), attr) == expected
