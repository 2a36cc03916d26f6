"""
Production Gunicorn configuration for EventPass Backend
"""

import multiprocessing
import os

# Server socket
bind = "0.0.0.0:5000"
backlog = 2048

# Worker processes
workers = int(os.getenv("WORKERS", multiprocessing.cpu_count() * 2 + 1))
worker_class = "uvicorn.workers.UvicornWorker"
max_requests = 1000
max_requests_jitter = 50

# Timeouts
# Must exceed PAYMENT_GATEWAY_TIMEOUT_SECONDS plus the refund call on a failed commit
timeout = 60
keepalive = 5
graceful_timeout = 30

# Logging
accesslog = "-"
errorlog = "-"
loglevel = "info"
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

# Process naming
proc_name = "eventpass-backend"

# Security
limit_request_line = 4094
limit_request_fields = 100
limit_request_field_size = 8190


def when_ready(server):
    """Called when the server is ready"""
    server.log.info("EventPass Backend ready for traffic")


def worker_int(worker):
    """Called when a worker receives the SIGINT or SIGQUIT signal"""
    worker.log.info(f"Worker {worker.pid} received shutdown signal")


# Environment-specific overrides
if os.getenv("ENVIRONMENT") == "production":
    workers = max(4, multiprocessing.cpu_count())
    max_requests = 2000
elif os.getenv("ENVIRONMENT") == "development":
    workers = 1
    reload = True
