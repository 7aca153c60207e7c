"""
Gunicorn configuration for the EDS share server.

Usage:
    gunicorn share_server.main:app -c gunicorn.conf.py
"""

import multiprocessing
import os

# Bind to all interfaces on port 8080
bind = os.getenv("EDS_SHARE_ADDR", "0.0.0.0:8080")

# SQLite has a single writer: one worker. PostgreSQL: CPU cores * 2 + 1
_driver = os.getenv("EDS_SHARE_DB_DRIVER", "sqlite").strip().lower()
_url = os.getenv("EDS_SHARE_DATABASE_URL", "")
if _url.startswith("postgres") or _driver in ("postgres", "postgresql", "pg"):
    workers = multiprocessing.cpu_count() * 2 + 1
else:
    workers = 1

# Use Uvicorn's ASGI worker for FastAPI
worker_class = "uvicorn.workers.UvicornWorker"

# Request timeout (seconds); OIDC key fetches give up after 5
timeout = 30

# Keep-alive connections (seconds)
keepalive = 5

# Logging
accesslog = "-"  # stdout
errorlog = "-"   # stderr
loglevel = "info"
