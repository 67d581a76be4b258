"""
Production Server Configuration

Run the analytics API with Uvicorn workers under Gunicorn.
"""

import multiprocessing
import os

# Server socket
bind = os.getenv("BIND", "0.0.0.0:8000")
backlog = 2048

# Worker processes. Queries are I/O bound on the event store, so a worker
# per core keeps the event loop count close to the store's connection budget.
workers = int(os.getenv("WORKERS", multiprocessing.cpu_count() + 1))
worker_class = "uvicorn.workers.UvicornWorker"
worker_connections = 1000
max_requests = 10000
max_requests_jitter = 1000
timeout = int(os.getenv("WORKER_TIMEOUT", 60))
keepalive = 5
graceful_timeout = 30

# Process naming
proc_name = "site-analytics-api"

# Server mechanics
daemon = False
pidfile = "/tmp/gunicorn.pid"

# Logging
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()
# Access logging happens in RequestLoggingMiddleware
accesslog = None


def on_starting(server):
    """Configure structlog in the master so startup messages share the format."""
    from src.config.logging import configure_logging
    configure_logging()


def worker_abort(worker):
    """Called when a worker times out, usually on a slow store query."""
    worker.log.warning("Worker %s aborted after %ss timeout", worker.pid, timeout)
