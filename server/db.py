"""SQLite connection and table initialization helpers."""

import os
import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = Path(__file__).parent / "data" / "cardflow.db"
DB_PATH = Path(os.getenv("CARDFLOW_DB_PATH", str(DEFAULT_DB_PATH)))


def _connect() -> sqlite3.Connection:
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    return conn


def init_all() -> None:
    """initialize all sqlite tables."""
    from server.flow_db import init_db as init_flow_db
    from server.session_db import init_db as init_session_db
    from server.turn_db import init_db as init_turn_db

    init_flow_db()
    init_session_db()
    init_turn_db()
