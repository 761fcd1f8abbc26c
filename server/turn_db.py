"""SQLite storage for turn trace events."""

from cardflow.models.trace_event import TraceEvent
from server import db


def init_db() -> None:
    with db._connect() as conn:
        conn.execute(
            """
            create table if not exists turn_events (
                id integer primary key autoincrement,
                turn_id text not null,
                session_id text not null,
                event_json text not null,
                event_type text,
                timestamp text,
                sequence integer
            )
            """
        )
        conn.execute(
            "create index if not exists idx_turn_events_turn_id on turn_events(turn_id)"
        )
        conn.commit()


def insert_events(turn_id: str, session_id: str, events: list[TraceEvent]) -> int:
    if not events:
        return 0
    rows = [
        (
            turn_id,
            session_id,
            event.model_dump_json(),
            event.event_type.value,
            event.timestamp,
            event.sequence,
        )
        for event in events
    ]
    with db._connect() as conn:
        conn.executemany(
            """
            insert into turn_events (
                turn_id,
                session_id,
                event_json,
                event_type,
                timestamp,
                sequence
            )
            values (?, ?, ?, ?, ?, ?)
            """,
            rows,
        )
        conn.commit()
    return len(events)


def load_events(turn_id: str) -> list[TraceEvent]:
    with db._connect() as conn:
        rows = conn.execute(
            """
            select event_json
            from turn_events
            where turn_id = ?
            order by id asc
            """,
            (turn_id,),
        ).fetchall()
    return [TraceEvent.model_validate_json(row["event_json"]) for row in rows]
