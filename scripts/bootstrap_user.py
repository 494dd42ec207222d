#!/usr/bin/env python3
"""Emit deterministic SQL that registers an identity-provider user in the marketplace."""

from __future__ import annotations

import argparse


def _quote_sql(value: str) -> str:
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def _nullable(value: str | None) -> str:
    return "null" if value is None else _quote_sql(value)


def render_sql(*, user_id: str, name: str, role: str, email: str | None, connects: int) -> str:
    return f"""-- Marketplace user bootstrap SQL
-- Run this against the marketplace database after the identity exists in Supabase auth.

insert into users (id, email, name, role, connects)
values ({_quote_sql(user_id)}::uuid, {_nullable(email)}, {_quote_sql(name)}, {_quote_sql(role)}::user_role, {connects})
on conflict (id) do update
set email = excluded.email,
    name = excluded.name,
    role = excluded.role;
"""


def main() -> None:
    parser = argparse.ArgumentParser(description="Emit SQL to register a marketplace user.")
    parser.add_argument("--user-id", required=True, help="Supabase auth.users id (UUID)")
    parser.add_argument("--name", required=True, help="Display name")
    parser.add_argument(
        "--role",
        choices=["CLIENT", "FREELANCER", "ADMIN"],
        default="CLIENT",
        help="Marketplace role stored on the users row",
    )
    parser.add_argument("--email", help="Contact email")
    parser.add_argument(
        "--connects",
        type=int,
        default=0,
        help="Initial connect balance for newly inserted users",
    )
    args = parser.parse_args()
    if args.connects < 0:
        parser.error("--connects must be non-negative")

    print(
        render_sql(
            user_id=args.user_id,
            name=args.name,
            role=args.role,
            email=args.email,
            connects=args.connects,
        )
    )


if __name__ == "__main__":
    main()
