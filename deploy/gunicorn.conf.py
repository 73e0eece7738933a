"""Gunicorn configuration for the worksheet assessment service.

Usage:
    gunicorn main:app -c deploy/gunicorn.conf.py

The service is I/O-bound: each evaluation waits on one external model call.
Run more than one worker only with RECORD_STORE_TYPE=redis; the in-memory
store and the worksheet session registry are per process.
"""

import multiprocessing
import os

# ─── Server socket ──────────────────────────────────────────────

bind = os.getenv("BIND", "0.0.0.0:5000")
backlog = 2048

# ─── Worker processes ───────────────────────────────────────────

_default_workers = min(multiprocessing.cpu_count(), 4)
if os.getenv("RECORD_STORE_TYPE", "memory") != "redis":
    _default_workers = 1

workers = int(os.getenv("WORKERS", _default_workers))
worker_class = "uvicorn.workers.UvicornWorker"

# ─── Timeouts ───────────────────────────────────────────────────
#
# The model call itself has no timeout; this is the outer backstop.

timeout = 180
graceful_timeout = 60
keepalive = 75

# ─── Worker recycling ──────────────────────────────────────────

max_requests = 3000
max_requests_jitter = 500

# ─── Logging ────────────────────────────────────────────────────

accesslog = "-"
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()

proc_name = "lkpd-assessment"


def on_starting(server):
    """Called just before the master process is initialized."""
    server.log.info(
        "Starting lkpd-assessment: workers=%d, timeout=%ds, bind=%s",
        workers,
        timeout,
        bind,
    )


def worker_exit(server, worker):
    """Called when a worker has been killed or exited."""
    server.log.info("Worker exit (pid: %s)", worker.pid)
