"""SQLite storage for per-session data store commits."""

import json

from cardflow.models.data_store import DataStoreSavedField
from cardflow.utils.identifiers import utc_timestamp
from server import db


def init_db() -> None:
    with db._connect() as conn:
        conn.execute(
            """
            create table if not exists data_store_commits (
                id integer primary key autoincrement,
                session_id text not null,
                turn_id text not null,
                fields_json text not null,
                committed_at text not null
            )
            """
        )
        conn.execute(
            "create index if not exists idx_commits_session on data_store_commits(session_id)"
        )
        conn.commit()


class SqliteDataStoreRepository:
    """DataStoreRepository over the data_store_commits table.

    Each commit is one row holding the full field snapshot, written in a
    single transaction.
    """

    def load(self, session_id: str) -> list[DataStoreSavedField]:
        with db._connect() as conn:
            row = conn.execute(
                """
                select fields_json from data_store_commits
                where session_id = ?
                order by id desc
                limit 1
                """,
                (session_id,),
            ).fetchone()
        if not row:
            return []
        return [DataStoreSavedField.model_validate(item) for item in json.loads(row["fields_json"])]

    def commit(
        self, session_id: str, turn_id: str, fields: list[DataStoreSavedField]
    ) -> None:
        with db._connect() as conn:
            conn.execute(
                """
                insert into data_store_commits (session_id, turn_id, fields_json, committed_at)
                values (?, ?, ?, ?)
                """,
                (
                    session_id,
                    turn_id,
                    json.dumps([item.to_document() for item in fields]),
                    utc_timestamp(),
                ),
            )
            conn.commit()

    def count(self, session_id: str) -> int:
        with db._connect() as conn:
            row = conn.execute(
                "select count(*) as n from data_store_commits where session_id = ?",
                (session_id,),
            ).fetchone()
        return row["n"]
