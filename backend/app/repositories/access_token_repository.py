from __future__ import annotations

import hashlib
import secrets
import sqlite3
from dataclasses import dataclass

from backend.app.repositories.common import utc_now_iso
from backend.app.repositories.database import Database

TOKEN_ID_PREFIX = "tok_"
_TOKEN_SEPARATOR = "."


@dataclass(frozen=True)
class AccessTokenRecord:
    token_id: str
    user_id: str
    label: str
    created_at: str
    revoked_at: str | None
    last_used_at: str | None

    @property
    def is_active(self) -> bool:
        return self.revoked_at is None


def split_bearer_token(token: str) -> tuple[str, str] | None:
    """
    Split `tok_<id>.<secret>` into its id and secret.

    Returns None for anything that cannot be one of our tokens, so callers can
    reject it without touching the database.
    """
    token_id, separator, secret = token.strip().partition(_TOKEN_SEPARATOR)
    if not separator or not secret or not token_id.startswith(TOKEN_ID_PREFIX):
        return None
    if len(token_id) == len(TOKEN_ID_PREFIX):
        return None
    return token_id, secret


class AccessTokenRepository:
    """Opaque bearer tokens bound to user profiles; only secret hashes are stored."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def create_token(self, *, user_id: str, label: str) -> tuple[AccessTokenRecord, str]:
        """Issue a token for `user_id`. The plain token is returned once and never stored."""
        normalized_label = label.strip()
        if not normalized_label:
            raise ValueError("label must not be empty")

        record = AccessTokenRecord(
            token_id=f"{TOKEN_ID_PREFIX}{secrets.token_urlsafe(9)}",
            user_id=user_id,
            label=normalized_label,
            created_at=utc_now_iso(),
            revoked_at=None,
            last_used_at=None,
        )
        secret = secrets.token_urlsafe(24)
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO access_tokens (
                    token_id, user_id, label, secret_hash, created_at,
                    revoked_at, last_used_at
                )
                VALUES (?, ?, ?, ?, ?, NULL, NULL)
                """,
                (
                    record.token_id,
                    record.user_id,
                    record.label,
                    _hash_secret(secret),
                    record.created_at,
                ),
            )
        return record, f"{record.token_id}{_TOKEN_SEPARATOR}{secret}"

    def resolve_user_id(self, token: str) -> str | None:
        """Return the owner of an active token and stamp its last use."""
        parts = split_bearer_token(token)
        if parts is None:
            return None
        token_id, secret = parts

        with self._db.connection() as conn:
            row = conn.execute(
                """
                SELECT user_id, secret_hash
                FROM access_tokens
                WHERE token_id = ? AND revoked_at IS NULL
                """,
                (token_id,),
            ).fetchone()
            if row is None:
                return None
            if not secrets.compare_digest(str(row["secret_hash"]), _hash_secret(secret)):
                return None
            conn.execute(
                "UPDATE access_tokens SET last_used_at = ? WHERE token_id = ?",
                (utc_now_iso(), token_id),
            )
        return str(row["user_id"])

    def revoke_token(self, token_id: str) -> bool:
        with self._db.connection() as conn:
            cursor = conn.execute(
                """
                UPDATE access_tokens
                SET revoked_at = ?
                WHERE token_id = ? AND revoked_at IS NULL
                """,
                (utc_now_iso(), token_id.strip()),
            )
        return cursor.rowcount > 0

    def revoke_user_tokens(self, user_id: str) -> int:
        """Revoke every active token of a user; returns how many were revoked."""
        with self._db.connection() as conn:
            cursor = conn.execute(
                """
                UPDATE access_tokens
                SET revoked_at = ?
                WHERE user_id = ? AND revoked_at IS NULL
                """,
                (utc_now_iso(), user_id),
            )
        return cursor.rowcount

    def list_tokens(
        self,
        *,
        include_revoked: bool,
        user_id: str | None = None,
    ) -> list[AccessTokenRecord]:
        clauses: list[str] = []
        params: list[object] = []
        if not include_revoked:
            clauses.append("revoked_at IS NULL")
        if user_id is not None:
            clauses.append("user_id = ?")
            params.append(user_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        with self._db.connection() as conn:
            rows = conn.execute(
                f"""
                SELECT token_id, user_id, label, created_at, revoked_at, last_used_at
                FROM access_tokens
                {where}
                ORDER BY created_at DESC
                """,
                tuple(params),
            ).fetchall()
        return [_record_from_row(row) for row in rows]


def _record_from_row(row: sqlite3.Row) -> AccessTokenRecord:
    return AccessTokenRecord(
        token_id=str(row["token_id"]),
        user_id=str(row["user_id"]),
        label=str(row["label"]),
        created_at=str(row["created_at"]),
        revoked_at=_optional_text(row["revoked_at"]),
        last_used_at=_optional_text(row["last_used_at"]),
    )


def _optional_text(value: object) -> str | None:
    return None if value is None else str(value)


def _hash_secret(secret: str) -> str:
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()
