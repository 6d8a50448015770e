#!/usr/bin/env python3
"""
Provider Directory — Moderator & API Key Management CLI

Usage:
    python3 scripts/manage_keys.py create-user --username alice --email alice@example.org

    python3 scripts/manage_keys.py create --username alice --tier moderator

    python3 scripts/manage_keys.py list

    python3 scripts/manage_keys.py revoke --key-id <uuid>

Key format: dir_{env}_{32 alphanumeric}
Keys are bcrypt-hashed before storage. The plaintext key is shown ONCE at creation.
Database connection from DIR_DB_* environment variables (see provider_directory/api/db.py).
"""

from __future__ import annotations

import argparse
import os
import secrets
import string
import sys

import psycopg2
from psycopg2 import extras

from provider_directory.api.auth import hash_key, key_prefix
from provider_directory.api.db import DB_CONFIG

VALID_TIERS = ("moderator", "admin")


def get_connection():
    conn = psycopg2.connect(**DB_CONFIG)
    conn.autocommit = True
    return conn


def generate_api_key(env: str = "live") -> str:
    """Generate a key: dir_{env}_{32 alphanumeric}."""
    charset = string.ascii_lowercase + string.digits
    random_part = "".join(secrets.choice(charset) for _ in range(32))
    return f"dir_{env}_{random_part}"


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_create_user(args):
    conn = get_connection()
    try:
        with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
            cur.execute(
                """
                INSERT INTO users (username, email, is_admin)
                VALUES (%s, %s, %s)
                RETURNING id, created_at
                """,
                (args.username, args.email, args.admin),
            )
            row = cur.fetchone()
        print(f"\nCreated user {args.username} ({row['id']}) at {row['created_at']}\n")
    except psycopg2.errors.UniqueViolation:
        print(f"\nError: user '{args.username}' already exists.\n")
        sys.exit(1)
    finally:
        conn.close()


def cmd_create(args):
    """Issue a new API key for an existing user."""
    env = os.environ.get("DIR_ENV", "live")
    plaintext_key = generate_api_key(env)

    conn = get_connection()
    try:
        with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
            cur.execute("SELECT id FROM users WHERE username = %s", (args.username,))
            user = cur.fetchone()
            if not user:
                print(f"\nError: user '{args.username}' not found. Run create-user first.\n")
                sys.exit(1)

            cur.execute(
                """
                INSERT INTO api_keys (user_id, key_prefix, key_hash, tier)
                VALUES (%s, %s, %s, %s)
                RETURNING id, created_at
                """,
                (user["id"], key_prefix(plaintext_key), hash_key(plaintext_key), args.tier),
            )
            row = cur.fetchone()

        print()
        print("=" * 60)
        print("  API KEY CREATED")
        print("=" * 60)
        print(f"  Key ID:   {row['id']}")
        print(f"  User:     {args.username}")
        print(f"  Tier:     {args.tier}")
        print(f"  Created:  {row['created_at']}")
        print()
        print("  PLAINTEXT KEY (shown ONCE, save it now):")
        print()
        print(f"  {plaintext_key}")
        print()
        print("=" * 60)
        print(f'  curl -H "X-API-Key: {plaintext_key}" http://localhost:8000/api/entries/unapproved')
        print()
    finally:
        conn.close()


def cmd_list(args):
    conn = get_connection()
    try:
        with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
            cur.execute(
                """
                SELECT k.id, u.username, k.tier, k.is_active, k.last_used_at, k.created_at
                FROM api_keys k
                JOIN users u ON u.id = k.user_id
                ORDER BY k.created_at DESC
                """
            )
            rows = cur.fetchall()

        if not rows:
            print("\nNo API keys found.\n")
            return

        print()
        print(f"{'ID':<38} {'User':<20} {'Tier':<10} {'Active':<8} {'Last Used'}")
        print("-" * 100)
        for r in rows:
            last_used = str(r["last_used_at"])[:19] if r["last_used_at"] else "never"
            active = "yes" if r["is_active"] else "NO"
            print(f"{r['id']!s:<38} {r['username']:<20} {r['tier']:<10} {active:<8} {last_used}")
        print()
        print(f"Total: {len(rows)} keys ({sum(1 for r in rows if r['is_active'])} active)")
        print()
    finally:
        conn.close()


def cmd_revoke(args):
    conn = get_connection()
    try:
        with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
            cur.execute(
                "UPDATE api_keys SET is_active = false WHERE id = %s AND is_active RETURNING id, tier",
                (args.key_id,),
            )
            row = cur.fetchone()
        if not row:
            print(f"\nNo active key with id '{args.key_id}'.\n")
            sys.exit(1)
        print(f"\nRevoked {row['tier']} key {row['id']}. Restart the API to drop cached keys.\n")
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def main():
    parser = argparse.ArgumentParser(description="Provider Directory: moderator and API key management")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    user_parser = subparsers.add_parser("create-user", help="Create a moderator account")
    user_parser.add_argument("--username", required=True)
    user_parser.add_argument("--email", default=None)
    user_parser.add_argument("--admin", action="store_true", help="Mark the account as admin")

    create_parser = subparsers.add_parser("create", help="Create a new API key")
    create_parser.add_argument("--username", required=True, help="Owner of the key")
    create_parser.add_argument("--tier", required=True, choices=VALID_TIERS)

    subparsers.add_parser("list", help="List all API keys")

    revoke_parser = subparsers.add_parser("revoke", help="Revoke an API key")
    revoke_parser.add_argument("--key-id", required=True, help="UUID of the key to revoke")

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        sys.exit(1)

    commands = {
        "create-user": cmd_create_user,
        "create": cmd_create,
        "list": cmd_list,
        "revoke": cmd_revoke,
    }
    commands[args.command](args)


if __name__ == "__main__":
    main()
