#!/usr/bin/env python3
"""
feedstream_server.py: run the feedstream JSON API.
- SQLite database at FEEDSTREAM_DB (created on first start)
- Feeds refresh when a user opens the first page or calls /feeds/refresh
"""

from __future__ import annotations

from feedstream import config, db, web
from feedstream.engine import FeedEngine
from feedstream.logging_config import setup_logging


def main() -> None:
    setup_logging(config.LOG_LEVEL, config.LOG_DIR or None)
    db.init_db()
    app = web.create_app(FeedEngine())
    app.run(host=config.HOST, port=config.PORT, debug=False)


if __name__ == "__main__":
    main()
