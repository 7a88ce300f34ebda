"""Runtime configuration read from the environment."""

from __future__ import annotations

import os

DB_PATH = os.environ.get("FEEDSTREAM_DB", "feedstream.sqlite3")

# Timeout for a single feed fetch (seconds)
FETCH_TIMEOUT = float(os.environ.get("FEEDSTREAM_FETCH_TIMEOUT", "30"))

# Upper bound on feeds fetched in parallel during one refresh
FETCH_WORKERS = int(os.environ.get("FEEDSTREAM_FETCH_WORKERS", "4"))

RETENTION_DAYS = int(os.environ.get("FEEDSTREAM_RETENTION_DAYS", "90"))
SWEEP_INTERVAL_HOURS = int(os.environ.get("FEEDSTREAM_SWEEP_INTERVAL_HOURS", "24"))

# Width of one page of the reading view
WINDOW_DAYS = int(os.environ.get("FEEDSTREAM_WINDOW_DAYS", "60"))

# Viewer time zone for day grouping; empty means the system local zone
DISPLAY_TZ = os.environ.get("FEEDSTREAM_TZ", "")

LOG_LEVEL = os.environ.get("FEEDSTREAM_LOG_LEVEL", "INFO")
LOG_DIR = os.environ.get("FEEDSTREAM_LOG_DIR", "")

HOST = os.environ.get("FEEDSTREAM_HOST", "127.0.0.1")
PORT = int(os.environ.get("FEEDSTREAM_PORT", "5000"))
