"""SQLite storage for flows."""

from cardflow.models.flow import Flow
from server import db


def init_db() -> None:
    with db._connect() as conn:
        conn.execute(
            """
            create table if not exists flows (
                flow_id text primary key,
                flow_json text not null,
                name text not null,
                ready_state text not null,
                created_at text not null,
                updated_at text not null
            )
            """
        )
        conn.commit()


def upsert_flow(flow: Flow, now: str) -> None:
    """insert or update a flow snapshot."""
    with db._connect() as conn:
        conn.execute(
            """
            insert into flows (flow_id, flow_json, name, ready_state, created_at, updated_at)
            values (?, ?, ?, ?, ?, ?)
            on conflict(flow_id) do update set
                flow_json = excluded.flow_json,
                name = excluded.name,
                ready_state = excluded.ready_state,
                updated_at = excluded.updated_at
            """,
            (
                flow.id,
                flow.model_dump_json(by_alias=True),
                flow.name,
                flow.ready_state.value,
                now,
                now,
            ),
        )
        conn.commit()


def get_flow(flow_id: str) -> Flow | None:
    with db._connect() as conn:
        row = conn.execute(
            "select flow_json from flows where flow_id = ?",
            (flow_id,),
        ).fetchone()
    if not row:
        return None
    return Flow.model_validate_json(row["flow_json"])


def list_flows() -> list[Flow]:
    with db._connect() as conn:
        rows = conn.execute(
            "select flow_json from flows order by updated_at desc"
        ).fetchall()
    return [Flow.model_validate_json(row["flow_json"]) for row in rows]


def delete_flow(flow_id: str) -> None:
    with db._connect() as conn:
        conn.execute("delete from flows where flow_id = ?", (flow_id,))
        conn.commit()
