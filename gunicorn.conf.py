"""
Gunicorn configuration for the telesense API.

    gunicorn telesense.main:app -c gunicorn.conf.py

Env vars that override defaults:
  PORT     — TCP port to bind (default: 8000)
  WORKERS  — number of worker processes (default: 1)
"""
import os

bind = f"0.0.0.0:{os.environ.get('PORT', '8000')}"

# Live stats are per process: more than one worker splits the counters and
# each worker runs its own broadcaster.
workers = int(os.environ.get("WORKERS", "1"))

worker_class = "uvicorn.workers.UvicornWorker"

keepalive = 5

# Must exceed REASONING_TIMEOUT_SECONDS times the behaviors in one batch item.
timeout = 120

loglevel = "info"
accesslog = "-"
errorlog = "-"
access_log_format = '%(h)s "%(r)s" %(s)s %(b)sB %(D)sµs'

graceful_timeout = 30
