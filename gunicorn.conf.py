"""Gunicorn settings for the billing API.

Usage:
    gunicorn -c gunicorn.conf.py app.main:app
"""
from __future__ import annotations

import multiprocessing
import os

# ── Server socket ────────────────────────────────────────
# Platforms that inject $PORT (webhook receivers behind a router) win over
# the local default.
bind = os.getenv("GUNICORN_BIND") or f"0.0.0.0:{os.getenv('PORT', '8080')}"

# ── Worker processes ─────────────────────────────────────
workers = int(os.getenv("GUNICORN_WORKERS", str(multiprocessing.cpu_count() + 1)))
worker_class = "uvicorn.workers.UvicornWorker"
worker_tmp_dir = "/dev/shm"

# ── Timeouts ─────────────────────────────────────────────
# The slowest request is a first checkout: one auth call, then a customer
# lookup, a customer create and a session create against Stripe. A worker
# must outlive those bounded calls so the caller sees the typed provider
# error instead of a killed worker.
_STRIPE_CALLS_PER_REQUEST = 3
_TIMEOUT_MARGIN_SECONDS = 10


def request_budget_seconds(stripe_timeout: int, auth_timeout: int) -> int:
    return (
        auth_timeout
        + stripe_timeout * _STRIPE_CALLS_PER_REQUEST
        + _TIMEOUT_MARGIN_SECONDS
    )


timeout = int(
    os.getenv("GUNICORN_TIMEOUT")
    or request_budget_seconds(
        int(os.getenv("STRIPE_TIMEOUT_SECONDS", "10")),
        int(os.getenv("AUTH_TIMEOUT_SECONDS", "5")),
    )
)
# In-flight webhooks finish before shutdown; Stripe redelivers anything cut off.
graceful_timeout = int(os.getenv("GUNICORN_GRACEFUL_TIMEOUT", str(timeout)))
keepalive = int(os.getenv("GUNICORN_KEEPALIVE", "5"))

# ── Preloading ───────────────────────────────────────────
preload_app = os.getenv("GUNICORN_PRELOAD", "false").lower() == "true"

# ── Logging ──────────────────────────────────────────────
# Request lines come from ObservabilityMiddleware as JSON.
accesslog = os.getenv("GUNICORN_ACCESSLOG") or None
errorlog = os.getenv("GUNICORN_ERRORLOG", "-")
loglevel = os.getenv("GUNICORN_LOGLEVEL", "info")

proc_name = "premium_billing"
