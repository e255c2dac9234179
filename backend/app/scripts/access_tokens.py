from __future__ import annotations

import argparse
from typing import cast

from backend.app.config import load_settings
from backend.app.models.video_state import UserProfile, UserRole
from backend.app.repositories.access_token_repository import AccessTokenRepository
from backend.app.repositories.database import Database
from backend.app.repositories.user_profile_repository import (
    USER_ROLES,
    UserAlreadyExistsError,
    UserProfileRepository,
)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Manage SkillSprint users and their API access tokens.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    create_user_parser = subparsers.add_parser("create-user", help="Create a user profile.")
    create_user_parser.add_argument("--email", required=True, help="User email address.")
    create_user_parser.add_argument(
        "--role",
        choices=sorted(USER_ROLES),
        default="user",
        help="User role. Admins may update video limits.",
    )
    create_user_parser.add_argument("--display-name", default=None, help="Optional display name.")

    set_role_parser = subparsers.add_parser("set-role", help="Change the role of a user.")
    set_role_parser.add_argument("--email", required=True, help="User email address.")
    set_role_parser.add_argument("--role", choices=sorted(USER_ROLES), required=True)

    issue_parser = subparsers.add_parser("issue", help="Issue a new access token for a user.")
    issue_parser.add_argument("--email", required=True, help="User email address.")
    issue_parser.add_argument(
        "--label",
        required=True,
        help="Human-readable label for the token (for example: web-laptop).",
    )

    revoke_parser = subparsers.add_parser("revoke", help="Revoke access tokens.")
    revoke_target = revoke_parser.add_mutually_exclusive_group(required=True)
    revoke_target.add_argument("--token-id", help="Token id (tok_...).")
    revoke_target.add_argument("--email", help="Revoke every active token of this user.")

    list_parser = subparsers.add_parser("list", help="List access tokens.")
    list_parser.add_argument("--email", default=None, help="Only list tokens for this user.")
    list_parser.add_argument(
        "--all",
        action="store_true",
        help="Include revoked tokens.",
    )

    return parser.parse_args(argv)


def _require_profile(profiles: UserProfileRepository, email: str) -> UserProfile:
    profile = profiles.get_profile_by_email(email)
    if profile is None:
        raise SystemExit(f"No user found for: {email}")
    return profile


def _print_token_list(
    tokens: AccessTokenRepository,
    *,
    include_revoked: bool,
    user_id: str | None,
) -> None:
    records = tokens.list_tokens(include_revoked=include_revoked, user_id=user_id)
    if not records:
        print("No access tokens found.")
        return

    print("token_id\tuser_id\tlabel\tcreated_at\trevoked_at\tlast_used_at")
    for record in records:
        print(
            "\t".join(
                [
                    record.token_id,
                    record.user_id,
                    record.label,
                    record.created_at,
                    record.revoked_at or "-",
                    record.last_used_at or "-",
                ]
            )
        )


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    settings = load_settings(validate_secrets=False)
    database = Database(settings.db_path)
    database.initialize()
    profiles = UserProfileRepository(database)
    tokens = AccessTokenRepository(database)

    if args.command == "create-user":
        try:
            profile = profiles.create_user(
                email=args.email,
                role=cast(UserRole, args.role),
                display_name=args.display_name,
            )
        except UserAlreadyExistsError as exc:
            raise SystemExit(str(exc)) from exc
        print(f"Created user: {profile.user_id}")
        print(f"Email: {profile.email}")
        print(f"Role: {profile.role}")
        return

    if args.command == "set-role":
        profile = _require_profile(profiles, args.email)
        profiles.set_role(profile.user_id, cast(UserRole, args.role))
        print(f"Updated role for {profile.email}: {args.role}")
        return

    if args.command == "issue":
        profile = _require_profile(profiles, args.email)
        record, token = tokens.create_token(user_id=profile.user_id, label=args.label)
        print(f"Issued access token: {record.token_id}")
        print(f"User: {profile.email}")
        print(f"Token (save now, only shown once): {token}")
        print(f"Authorization header: Bearer {token}")
        return

    if args.command == "revoke" and args.email is not None:
        profile = _require_profile(profiles, args.email)
        count = tokens.revoke_user_tokens(profile.user_id)
        print(f"Revoked {count} access token(s) for {profile.email}")
        return

    if args.command == "revoke":
        revoked = tokens.revoke_token(args.token_id)
        if revoked:
            print(f"Revoked access token: {args.token_id}")
        else:
            print(f"No active access token found for: {args.token_id}")
        return

    if args.command == "list":
        user_id = None
        if args.email is not None:
            user_id = _require_profile(profiles, args.email).user_id
        _print_token_list(tokens, include_revoked=args.all, user_id=user_id)
        return

    raise RuntimeError(f"Unhandled command: {args.command}")


if __name__ == "__main__":
    main()
