"""Tests for gunicorn configuration."""
from __future__ import annotations

import importlib.util
import os
from unittest.mock import patch

_GUNICORN_ENV = (
    "GUNICORN_BIND",
    "GUNICORN_TIMEOUT",
    "GUNICORN_GRACEFUL_TIMEOUT",
    "GUNICORN_ACCESSLOG",
    "PORT",
    "STRIPE_TIMEOUT_SECONDS",
    "AUTH_TIMEOUT_SECONDS",
)


def _load(env: dict[str, str] | None = None, name: str = "gunicorn_conf"):
    clean = {k: v for k, v in os.environ.items() if k not in _GUNICORN_ENV}
    clean.update(env or {})
    with patch.dict(os.environ, clean, clear=True):
        spec = importlib.util.spec_from_file_location(name, "gunicorn.conf.py")
        assert spec is not None
        mod = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(mod)  # type: ignore[union-attr]
    return mod


class TestGunicornConfig:
    def test_defaults(self) -> None:
        mod = _load()
        assert mod.bind == "0.0.0.0:8080"
        assert "uvicorn" in mod.worker_class
        assert mod.proc_name == "premium_billing"
        assert mod.preload_app is False
        assert mod.accesslog is None

    def test_timeout_covers_default_provider_calls(self) -> None:
        mod = _load()
        # 5s auth + 3 x 10s Stripe + 10s margin
        assert mod.timeout == 45
        assert mod.graceful_timeout == mod.timeout

    def test_timeout_follows_provider_timeouts(self) -> None:
        mod = _load(
            {"STRIPE_TIMEOUT_SECONDS": "20", "AUTH_TIMEOUT_SECONDS": "2"},
            name="gunicorn_conf_slow_stripe",
        )
        assert mod.timeout == 72

    def test_explicit_timeout_wins(self) -> None:
        mod = _load({"GUNICORN_TIMEOUT": "30"}, name="gunicorn_conf_fixed")
        assert mod.timeout == 30

    def test_port_from_platform(self) -> None:
        mod = _load({"PORT": "9000"}, name="gunicorn_conf_port")
        assert mod.bind == "0.0.0.0:9000"

    def test_env_override_workers(self) -> None:
        mod = _load({"GUNICORN_WORKERS": "4"}, name="gunicorn_conf_custom")
        assert mod.workers == 4
