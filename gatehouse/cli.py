"""Administrative command line for the user store.

Examples::

    gatehouse-admin user get alice
    gatehouse-admin user set --username alice --role admin
    gatehouse-admin user set --username bob --password s3cret --ip 203.0.113.7
    gatehouse-admin user delete --username bob
    gatehouse-admin users list
    gatehouse-admin users delete --prefix test_
    gatehouse-admin users delete --created-between 2024-01-01 2024-02-01

Commands run against the database configured by ``DB_URL``.
"""

from __future__ import annotations

import argparse
import sys
from datetime import datetime, timezone
from typing import Sequence

from sqlalchemy.exc import SQLAlchemyError

from gatehouse.core.config import Settings
from gatehouse.core.passwords import hash_password
from gatehouse.db import store
from gatehouse.db.database import build_engine, build_session_factory, init_db, session_scope
from gatehouse.db.models import User

ROLES = ("admin", "user")
DATE_FORMAT = "%Y-%m-%d"


def _parse_date(value: str) -> datetime:
    try:
        return datetime.strptime(value, DATE_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"bad date {value!r}, expected YYYY-MM-DD") from exc


def _role(value: str) -> str:
    role = value.lower()
    if role not in ROLES:
        raise argparse.ArgumentTypeError(f"invalid role: {value}")
    return role


def _format_time(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _describe(user: User) -> str:
    return (
        f"id={user.id} username={user.username} role={user.role} "
        f"ip={user.ip} created_at={_format_time(user.created_at)}"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gatehouse-admin", description="Manage gatehouse users")
    groups = parser.add_subparsers(dest="group", required=True)

    user = groups.add_parser("user", help="Single user operations")
    user_cmds = user.add_subparsers(dest="command", required=True)

    get = user_cmds.add_parser("get", help="Show one user")
    get.add_argument("username")

    set_ = user_cmds.add_parser("set", help="Create a user or patch an existing one")
    set_.add_argument("--username", required=True)
    set_.add_argument("--role", type=_role, help="admin or user")
    set_.add_argument("--ip", help="Owning address")
    set_.add_argument("--password", help="Required when creating a user")

    delete = user_cmds.add_parser("delete", help="Delete one user")
    delete.add_argument("--username", required=True)

    users = groups.add_parser("users", help="Bulk operations")
    users_cmds = users.add_subparsers(dest="command", required=True)

    users_cmds.add_parser("list", help="List all users")

    bulk_delete = users_cmds.add_parser("delete", help="Delete users in bulk")
    mode = bulk_delete.add_mutually_exclusive_group(required=True)
    mode.add_argument("--prefix", help="Delete usernames starting with this prefix")
    mode.add_argument(
        "--created-between",
        nargs=2,
        type=_parse_date,
        metavar=("START", "END"),
        help="Delete users created from START (inclusive) to END (exclusive)",
    )

    return parser


def _user_get(db, args: argparse.Namespace) -> int:
    user = store.get_user_by_username(db, args.username)
    if user is None:
        print(f"user not found: {args.username}", file=sys.stderr)
        return 1
    print(f"id: {user.id}")
    print(f"username: {user.username}")
    print(f"role: {user.role}")
    print(f"ip: {user.ip}")
    print(f"created_at: {_format_time(user.created_at)}")
    return 0


def _user_set(db, args: argparse.Namespace, settings: Settings) -> int:
    password_hash = None
    if args.password:
        password_hash = hash_password(args.password, rounds=settings.auth.bcrypt_rounds)

    user = store.get_user_by_username(db, args.username)
    if user is None:
        if password_hash is None:
            print("password is required for new user", file=sys.stderr)
            return 2
        user = store.create_user(
            db,
            args.username,
            password_hash,
            args.ip or "",
            role=args.role or "user",
        )
        print(f"created: {_describe(user)}")
        return 0

    store.update_user(db, user, password_hash=password_hash, ip=args.ip, role=args.role)
    print(f"updated: {_describe(user)}")
    return 0


def _user_delete(db, args: argparse.Namespace) -> int:
    if not store.delete_user_by_username(db, args.username):
        print(f"user not found: {args.username}", file=sys.stderr)
        return 1
    print(f"deleted {args.username}")
    return 0


def _users_list(db) -> int:
    print(f"{'ID':<6} {'USERNAME':<24} {'ROLE':<8} {'CREATED_AT':<25}")
    for user in store.list_users(db):
        print(f"{user.id:<6} {user.username:<24} {user.role:<8} {_format_time(user.created_at):<25}")
    return 0


def _users_delete(db, args: argparse.Namespace) -> int:
    if args.prefix:
        deleted = store.delete_users_by_prefix(db, args.prefix)
        print(f"deleted {deleted} users with prefix {args.prefix}")
        return 0

    start, end = args.created_between
    deleted = store.delete_users_created_between(db, start, end)
    print(
        f"deleted {deleted} users created between "
        f"{start.strftime(DATE_FORMAT)} and {end.strftime(DATE_FORMAT)}"
    )
    return 0


def main(argv: Sequence[str] | None = None, *, settings: Settings | None = None) -> int:
    args = build_parser().parse_args(argv)
    if settings is None:
        from gatehouse.core.config import settings as default_settings

        settings = default_settings

    engine = build_engine(settings.db)
    try:
        init_db(engine)
        with session_scope(build_session_factory(engine)) as db:
            if args.group == "user":
                if args.command == "get":
                    return _user_get(db, args)
                if args.command == "set":
                    return _user_set(db, args, settings)
                return _user_delete(db, args)
            if args.command == "list":
                return _users_list(db)
            return _users_delete(db, args)
    except SQLAlchemyError as exc:
        print(f"database error: {exc}", file=sys.stderr)
        return 1
    finally:
        engine.dispose()


if __name__ == "__main__":
    sys.exit(main())
