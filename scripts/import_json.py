#!/usr/bin/env python3
"""
Provider Directory — JSON → PostgreSQL Import

Loads the JSON fallback files into the database:
    1. geodata.json → geodata   (read-only gazetteer, OpenGeoDB export)
    2. users.json   → users
    3. entries.json → entries

Design:
    - Applies the bundled schema first (idempotent)
    - Batch commits every 500 records
    - ON CONFLICT (id) DO NOTHING for users and entries, safe to re-run
    - The gazetteer is replaced wholesale (``--replace-geodata``) or appended

Usage:
    python3 scripts/import_json.py --data-dir data
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path

import psycopg2

from provider_directory.algorithms.geo_proximity import GeoPoint
from provider_directory.api.db import DB_CONFIG, SCHEMA_PATH

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger(__name__)

BATCH_SIZE = 500

_POINT_SQL = "ST_SetSRID(ST_MakePoint(%s, %s), 4326)::geography"


def _read(path: Path) -> list[dict]:
    if not path.exists():
        logger.info("Skipping %s (not found)", path)
        return []
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    logger.info("Loaded %d records from %s", len(data), path)
    return data


def _point_params(geojson) -> tuple:
    point = GeoPoint.from_geojson(geojson)
    if point is None:
        return (None, None)
    return (point.longitude, point.latitude)


def _point_expr(geojson) -> str:
    return _POINT_SQL if GeoPoint.from_geojson(geojson) else "NULL"


def import_geodata(conn, records: list[dict], replace: bool) -> int:
    with conn.cursor() as cur:
        if replace:
            cur.execute("TRUNCATE geodata")
        for i, rec in enumerate(records, 1):
            location = rec.get("location")
            reference = rec.get("reference_location")
            params = [rec["name"], rec.get("ascii"), rec.get("plz"), int(rec.get("level") or 0)]
            if GeoPoint.from_geojson(location):
                params.extend(_point_params(location))
            if GeoPoint.from_geojson(reference):
                params.extend(_point_params(reference))
            cur.execute(
                f"""
                INSERT INTO geodata (name, ascii, plz, level, location, reference_location)
                VALUES (%s, %s, %s, %s, {_point_expr(location)}, {_point_expr(reference)})
                """,
                params,
            )
            if i % BATCH_SIZE == 0:
                conn.commit()
                logger.info("geodata: %d/%d committed", i, len(records))
    conn.commit()
    return len(records)


def import_users(conn, records: list[dict]) -> int:
    inserted = 0
    with conn.cursor() as cur:
        for rec in records:
            cur.execute(
                """
                INSERT INTO users (id, username, email, is_admin)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (id) DO NOTHING
                """,
                (rec["id"], rec["username"], rec.get("email"), bool(rec.get("is_admin"))),
            )
            inserted += cur.rowcount
    conn.commit()
    return inserted


def import_entries(conn, records: list[dict]) -> int:
    inserted = 0
    with conn.cursor() as cur:
        for i, rec in enumerate(records, 1):
            address = rec.get("address") or {}
            meta = rec.get("meta") or {}
            location = rec.get("location")
            params = [
                rec["id"], rec["type"], rec["name"], rec.get("first_name"), rec.get("last_name"),
                rec.get("email"), rec.get("website"), rec.get("telephone"), rec.get("accessible"),
                address.get("city"), address.get("plz"), address.get("street"), address.get("house"),
                meta.get("offers"), meta.get("attributes"), meta.get("specials"), meta.get("min_age"),
                meta.get("subject"),
                bool(rec.get("approved")), bool(rec.get("blocked")), rec.get("approved_by"),
                rec.get("approved_timestamp"), rec.get("submitted_timestamp"),
            ]
            if GeoPoint.from_geojson(location):
                params.extend(_point_params(location))
            cur.execute(
                f"""
                INSERT INTO entries (
                    id, type, name, first_name, last_name, email, website, telephone, accessible,
                    city, plz, street, house, offers, attributes, specials, min_age, subject,
                    approved, blocked, approved_by, approved_timestamp, submitted_timestamp,
                    location
                ) VALUES (
                    %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s,
                    %s, %s, %s, %s, COALESCE(%s::timestamptz, now()), {_point_expr(location)}
                )
                ON CONFLICT (id) DO NOTHING
                """,
                params,
            )
            inserted += cur.rowcount
            if i % BATCH_SIZE == 0:
                conn.commit()
                logger.info("entries: %d/%d committed", i, len(records))
        conn.commit()

        # duplicate back-references may point forward, so set them last
        for rec in records:
            if rec.get("possible_duplicate"):
                cur.execute(
                    "UPDATE entries SET possible_duplicate = %s WHERE id = %s",
                    (rec["possible_duplicate"], rec["id"]),
                )
    conn.commit()
    return inserted


def main():
    parser = argparse.ArgumentParser(description="Import JSON fallback data into PostgreSQL")
    parser.add_argument("--data-dir", default="data", help="Directory with entries/geodata/users JSON")
    parser.add_argument("--replace-geodata", action="store_true", help="Truncate geodata before import")
    args = parser.parse_args()

    data_dir = Path(args.data_dir)
    logger.info(
        "Connecting to %s@%s:%s/%s",
        DB_CONFIG["user"],
        DB_CONFIG["host"],
        DB_CONFIG["port"],
        DB_CONFIG["dbname"],
    )
    conn = psycopg2.connect(**DB_CONFIG)
    conn.autocommit = False

    try:
        with conn.cursor() as cur:
            cur.execute(SCHEMA_PATH.read_text())
        conn.commit()

        t0 = time.time()
        stats = {
            "geodata_inserted": import_geodata(conn, _read(data_dir / "geodata.json"), args.replace_geodata),
            "users_inserted": import_users(conn, _read(data_dir / "users.json")),
            "entries_inserted": import_entries(conn, _read(data_dir / "entries.json")),
        }
        logger.info("Import complete in %.1f seconds", time.time() - t0)
        for key, val in stats.items():
            logger.info("  %-20s %d", key, val)
    except Exception:
        conn.rollback()
        logger.exception("Import failed, rolled back")
        sys.exit(1)
    finally:
        conn.close()


if __name__ == "__main__":
    main()
