"""
Gunicorn configuration for the DocShare API
"""
import multiprocessing
import os

# Server socket
bind = os.getenv("DOCSHARE_BIND", "127.0.0.1:8000")
backlog = 2048

# Worker processes
workers = int(os.getenv("DOCSHARE_WORKERS", multiprocessing.cpu_count() * 2 + 1))
worker_class = "uvicorn.workers.UvicornWorker"
worker_connections = 1000
timeout = 60
keepalive = 5

# Logging
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("DOCSHARE_LOG_LEVEL", "info").lower()
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

# Process naming
proc_name = "docshare-api"

# Server mechanics
daemon = False
user = None
group = None
tmp_upload_dir = None

capture_output = True
enable_stdio_inheritance = True

preload_app = True

graceful_timeout = 30

reload = False
