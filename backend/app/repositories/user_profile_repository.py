from __future__ import annotations

import sqlite3
from uuid import uuid4

from backend.app.models.video_state import UserProfile, UserRole, UserVideoCollections
from backend.app.repositories.common import utc_now_iso
from backend.app.repositories.database import Database
from backend.app.repositories.video_state_documents import (
    collections_from_document,
    collections_to_document,
    dump_collection_columns,
    load_collection_columns,
)

USER_ROLES: frozenset[str] = frozenset({"user", "admin"})


class UserAlreadyExistsError(ValueError):
    pass


class UserProfileRepository:
    def __init__(self, db: Database) -> None:
        self._db = db

    def create_user(
        self,
        *,
        email: str,
        role: UserRole = "user",
        display_name: str | None = None,
    ) -> UserProfile:
        normalized_email = email.strip().lower()
        if not normalized_email:
            raise ValueError("email must not be empty")
        if role not in USER_ROLES:
            raise ValueError(f"role must be one of: {', '.join(sorted(USER_ROLES))}")

        user_id = f"usr_{uuid4().hex}"
        now_iso = utc_now_iso()
        empty_columns = dump_collection_columns(collections_to_document(UserVideoCollections()))
        try:
            with self._db.connection() as conn:
                conn.execute(
                    """
                    INSERT INTO user_profiles (
                        user_id, email, role, display_name,
                        module_videos_json, ai_videos_json, ai_search_usage_json,
                        revision, created_at, updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?, ?)
                    """,
                    (
                        user_id,
                        normalized_email,
                        role,
                        display_name,
                        *empty_columns,
                        now_iso,
                        now_iso,
                    ),
                )
        except sqlite3.IntegrityError as exc:
            raise UserAlreadyExistsError(f"user already exists: {normalized_email}") from exc

        return UserProfile(
            user_id=user_id,
            email=normalized_email,
            role=role,
            display_name=display_name,
            collections=UserVideoCollections(),
            revision=0,
        )

    def get_profile(self, user_id: str) -> UserProfile | None:
        with self._db.connection() as conn:
            row = conn.execute(
                """
                SELECT user_id, email, role, display_name,
                       module_videos_json, ai_videos_json, ai_search_usage_json, revision
                FROM user_profiles
                WHERE user_id = ?
                """,
                (user_id,),
            ).fetchone()
        if row is None:
            return None
        return _row_to_profile(row)

    def get_profile_by_email(self, email: str) -> UserProfile | None:
        with self._db.connection() as conn:
            row = conn.execute(
                """
                SELECT user_id, email, role, display_name,
                       module_videos_json, ai_videos_json, ai_search_usage_json, revision
                FROM user_profiles
                WHERE email = ?
                """,
                (email.strip().lower(),),
            ).fetchone()
        if row is None:
            return None
        return _row_to_profile(row)

    def set_role(self, user_id: str, role: UserRole) -> bool:
        if role not in USER_ROLES:
            raise ValueError(f"role must be one of: {', '.join(sorted(USER_ROLES))}")
        with self._db.connection() as conn:
            cursor = conn.execute(
                """
                UPDATE user_profiles
                SET role = ?, updated_at = ?
                WHERE user_id = ?
                """,
                (role, utc_now_iso(), user_id),
            )
        return cursor.rowcount > 0

    def compare_and_swap_collections(
        self,
        *,
        user_id: str,
        expected_revision: int,
        collections: UserVideoCollections,
    ) -> bool:
        """
        Replace all keyed video collections of a profile in one conditional write.

        The write only lands when the stored revision still equals
        `expected_revision`; returns False when another writer got there first.
        """
        module_videos_json, ai_videos_json, ai_search_usage_json = dump_collection_columns(
            collections_to_document(collections)
        )
        with self._db.connection() as conn:
            cursor = conn.execute(
                """
                UPDATE user_profiles
                SET module_videos_json = ?,
                    ai_videos_json = ?,
                    ai_search_usage_json = ?,
                    revision = revision + 1,
                    updated_at = ?
                WHERE user_id = ? AND revision = ?
                """,
                (
                    module_videos_json,
                    ai_videos_json,
                    ai_search_usage_json,
                    utc_now_iso(),
                    user_id,
                    expected_revision,
                ),
            )
        return cursor.rowcount == 1

    def delete_user(self, user_id: str) -> bool:
        with self._db.connection() as conn:
            cursor = conn.execute("DELETE FROM user_profiles WHERE user_id = ?", (user_id,))
        return cursor.rowcount > 0


def _row_to_profile(row: sqlite3.Row) -> UserProfile:
    document = load_collection_columns(
        module_videos_json=str(row["module_videos_json"]),
        ai_videos_json=str(row["ai_videos_json"]),
        ai_search_usage_json=str(row["ai_search_usage_json"]),
    )
    raw_role = str(row["role"])
    role: UserRole = "admin" if raw_role == "admin" else "user"
    return UserProfile(
        user_id=str(row["user_id"]),
        email=str(row["email"]),
        role=role,
        display_name=(str(row["display_name"]) if row["display_name"] is not None else None),
        collections=collections_from_document(document),
        revision=int(row["revision"]),
    )
