from __future__ import annotations

import json
from typing import Any
from uuid import uuid4

from backend.app.repositories.common import utc_now_iso
from backend.app.repositories.database import Database


class AuditRepository:
    def __init__(self, db: Database) -> None:
        self._db = db

    def create_event(
        self,
        *,
        request_id: str,
        actor_user_id: str,
        action: str,
        payload: dict[str, Any],
        result: dict[str, Any],
    ) -> str:
        event_id = f"evt_{uuid4().hex}"
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO audit_events
                (id, request_id, actor_user_id, action, payload_json, result_json, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event_id,
                    request_id,
                    actor_user_id,
                    action,
                    json.dumps(payload, sort_keys=True),
                    json.dumps(result, sort_keys=True),
                    utc_now_iso(),
                ),
            )
        return event_id

    def list_events(self, *, action: str | None = None, limit: int = 50) -> list[dict[str, Any]]:
        query = """
            SELECT id, request_id, actor_user_id, action, payload_json, result_json, created_at
            FROM audit_events
        """
        params: list[object] = []
        if action is not None:
            query += " WHERE action = ?"
            params.append(action)
        query += " ORDER BY created_at DESC LIMIT ?"
        params.append(max(1, limit))

        with self._db.connection() as conn:
            rows = conn.execute(query, tuple(params)).fetchall()

        return [
            {
                "id": str(row["id"]),
                "request_id": str(row["request_id"]),
                "actor_user_id": str(row["actor_user_id"]),
                "action": str(row["action"]),
                "payload": json.loads(str(row["payload_json"])),
                "result": json.loads(str(row["result_json"])),
                "created_at": str(row["created_at"]),
            }
            for row in rows
        ]
