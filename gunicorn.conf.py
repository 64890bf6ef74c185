"""
Gunicorn Configuration

Uvicorn workers under Gunicorn. Each worker runs the FastAPI lifespan, so
each opens its own database engine.
"""

import multiprocessing
import os

bind = os.getenv("BIND", "0.0.0.0:8000")
workers = int(os.getenv("WORKERS", multiprocessing.cpu_count() + 1))
worker_class = "uvicorn.workers.UvicornWorker"

# Planning and ops requests fan out several queries; leave room for slow stores
timeout = int(os.getenv("GUNICORN_TIMEOUT", 60))
graceful_timeout = 30
keepalive = 5
max_requests = 5000
max_requests_jitter = 500

proc_name = "commerce-opsboard-api"

# Application logs go through structlog; gunicorn only reports its own events
errorlog = "-"
accesslog = None
loglevel = os.getenv("LOG_LEVEL", "info").lower()


def post_fork(server, worker):
    server.log.info("Worker spawned (pid: %s)", worker.pid)


def worker_abort(worker):
    worker.log.warning("Worker aborted (pid: %s)", worker.pid)
