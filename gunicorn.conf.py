"""
Gunicorn configuration for running SWCache behind uvicorn workers.

    gunicorn wsgi:app -c gunicorn.conf.py
"""

import multiprocessing
import os

# Server socket
bind = f"{os.getenv('HOST', '0.0.0.0')}:{os.getenv('PORT', '8080')}"
backlog = 2048

# Worker processes
# In-memory stores live per process; several workers share a cache only with
# the filesystem backend
if (
    os.getenv("IS_LOCAL_DEPLOYMENT", "False").lower() == "true"
    or os.getenv("STORAGE_BACKEND", "memory").lower() == "memory"
):
    workers = 1
else:
    workers = multiprocessing.cpu_count() * 2 + 1
worker_class = "uvicorn.workers.UvicornWorker"
worker_connections = 1000
max_requests = 1000
max_requests_jitter = 50
timeout = 120
graceful_timeout = 30  # Lets in-flight revalidations finish on restart
keepalive = 5

proc_name = "swcache"

# Logging
accesslog = os.getenv("ACCESS_LOG", "-")
errorlog = os.getenv("ERROR_LOG", "-")
loglevel = os.getenv("LOG_LEVEL", "info").lower()
capture_output = True

# Server mechanics
daemon = False
pidfile = None


def when_ready(server):
    server.log.info("SWCache ready, spawning workers")


def post_fork(server, worker):
    server.log.info(f"Worker spawned (pid: {worker.pid})")


def worker_int(worker):
    worker.log.info(f"Worker {worker.pid} received INT or QUIT signal")


def on_exit(server):
    server.log.info("Shutting down SWCache")
