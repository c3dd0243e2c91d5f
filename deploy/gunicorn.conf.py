"""Gunicorn configuration for the Curio Feed service.

Usage:
    gunicorn main:app -c deploy/gunicorn.conf.py

The service is I/O-bound: the generation proxy holds each request open for
the duration of an upstream LLM call (5-60s), saves are short.
"""

import multiprocessing
import os

# ─── Server socket ──────────────────────────────────────────────

bind = os.getenv("BIND", "0.0.0.0:5000")
backlog = 2048

# ─── Worker processes ───────────────────────────────────────────
#
# One async worker per core; each handles many concurrent proxied requests
# on its event loop. The per-worker proxy cap lives in
# MAX_CONCURRENT_PROXY_REQUESTS (see config/settings.py).

workers = int(os.getenv("WORKERS", min(multiprocessing.cpu_count(), 4)))
worker_class = "uvicorn.workers.UvicornWorker"

# ─── Timeouts ───────────────────────────────────────────────────
#
# Must exceed GENERATION_TIMEOUT so a slow upstream surfaces as a proxy 500
# rather than a killed worker.

timeout = 90
graceful_timeout = 30
keepalive = 5

# ─── Worker recycling ──────────────────────────────────────────
#
# The in-memory content store is per worker and bounded, recycling keeps
# long-running workers from holding stale blocks indefinitely.

max_requests = 5000
max_requests_jitter = 500

# ─── Logging ────────────────────────────────────────────────────

accesslog = "-"
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()

proc_name = "curio-feed"


def on_starting(server):
    """Called just before the master process is initialized."""
    server.log.info(
        "Starting Curio Feed: workers=%d, timeout=%ds, bind=%s",
        workers,
        timeout,
        bind,
    )


def worker_exit(server, worker):
    """Called when a worker has been killed or exited."""
    server.log.info("Worker exit (pid: %s)", worker.pid)
