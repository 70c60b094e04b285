#!/usr/bin/env python3
"""Reservation and custody integrity checks for a LogiScan database."""

from __future__ import annotations

import argparse
import os
import sys
from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import create_engine, inspect, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from logiscan.models.logistics_models import Asset, AssetReservation, Event, QuoteItem
from logiscan.models.statuses import (
    ASSET_AVAILABLE,
    ASSET_RESERVED,
    ASSET_STATES,
    EVENT_STATES,
    INACTIVE_RESERVATION_STATES,
    RESERVATION_CANCELLED,
    RESERVATION_STATES,
)
from logiscan.services.dates import overlaps
from logiscan.services.repositories import get_assigned_assets


EXPECTED_TABLES = [
    "StockItems",
    "Assets",
    "Trucks",
    "Events",
    "QuoteItems",
    "AssetReservations",
    "ScanLists",
    "TaskChains",
    "Tasks",
    "TaskNotifications",
    "AuditLogs",
]


@dataclass
class CheckResult:
    name: str
    ok: bool
    detail: str


def _print_section(title: str) -> None:
    print(f"\n=== {title} ===")


def _get_engine(db_url: str) -> Engine:
    return create_engine(db_url, pool_pre_ping=True, future=True)


def _scalar(engine: Engine, sql: str):
    with engine.connect() as conn:
        return conn.execute(text(sql)).scalar()


def run_existence_checks(engine: Engine) -> list[CheckResult]:
    present = set(inspect(engine).get_table_names())
    return [
        CheckResult(f"table:{table}", table in present, "present" if table in present else "missing")
        for table in EXPECTED_TABLES
    ]


def find_double_bookings(reservations: Iterable[AssetReservation]) -> list[tuple[str, str, str]]:
    by_asset: dict[str, list[AssetReservation]] = defaultdict(list)
    for reservation in reservations:
        if reservation.Status != RESERVATION_CANCELLED:
            by_asset[reservation.AssetID].append(reservation)

    clashes = []
    for asset_id, held in sorted(by_asset.items()):
        held.sort(key=lambda r: (r.StartDate, r.EventID))
        for index, first in enumerate(held):
            for second in held[index + 1:]:
                if first.EventID != second.EventID and overlaps(first.StartDate, first.EndDate, second.StartDate, second.EndDate):
                    clashes.append((asset_id, first.EventID, second.EventID))
    return clashes


def find_quote_count_mismatches(db: Session) -> list[int]:
    mismatched = []
    for quote_item in db.execute(select(QuoteItem).order_by(QuoteItem.QuoteItemID)).scalars():
        assigned = get_assigned_assets(quote_item)
        if assigned and len(assigned) != int(quote_item.Quantity or 0):
            mismatched.append(quote_item.QuoteItemID)
    return mismatched


def find_status_mismatches(db: Session, reservations: list[AssetReservation]) -> list[str]:
    held = {r.AssetID for r in reservations if r.Status not in INACTIVE_RESERVATION_STATES}
    mismatched = []
    for asset in db.execute(select(Asset).order_by(Asset.AssetID)).scalars():
        if asset.Status == ASSET_RESERVED and asset.AssetID not in held:
            mismatched.append(asset.AssetID)
        elif asset.Status == ASSET_AVAILABLE and asset.AssetID in held:
            mismatched.append(asset.AssetID)
    return mismatched


def find_orphan_reservations(db: Session, reservations: list[AssetReservation]) -> list[str]:
    asset_ids = set(db.execute(select(Asset.AssetID)).scalars())
    event_ids = set(db.execute(select(Event.EventID)).scalars())
    return [
        r.ReservationID
        for r in reservations
        if r.AssetID not in asset_ids or r.EventID not in event_ids
    ]


def count_unknown_statuses(db: Session, reservations: list[AssetReservation]) -> dict[str, int]:
    return {
        "assets": sum(1 for status in db.execute(select(Asset.Status)).scalars() if status not in ASSET_STATES),
        "events": sum(1 for status in db.execute(select(Event.Status)).scalars() if status not in EVENT_STATES),
        "reservations": sum(1 for r in reservations if r.Status not in RESERVATION_STATES),
    }


def run_integrity_checks(db: Session) -> list[CheckResult]:
    reservations = list(db.execute(select(AssetReservation)).scalars())
    checks: list[CheckResult] = []

    clashes = find_double_bookings(reservations)
    checks.append(
        CheckResult(
            "reservations:double_booking",
            not clashes,
            f"count={len(clashes)}" + (f" first={clashes[0]}" if clashes else ""),
        )
    )

    mismatched_lines = find_quote_count_mismatches(db)
    checks.append(
        CheckResult(
            "quoteitems:assigned_count_mismatch",
            not mismatched_lines,
            f"count={len(mismatched_lines)}",
        )
    )

    mismatched_assets = find_status_mismatches(db, reservations)
    checks.append(
        CheckResult(
            "assets:status_vs_reservations",
            not mismatched_assets,
            f"count={len(mismatched_assets)}",
        )
    )

    orphans = find_orphan_reservations(db, reservations)
    checks.append(
        CheckResult(
            "reservations:orphan_asset_or_event",
            not orphans,
            f"count={len(orphans)}",
        )
    )

    for table, unknown in count_unknown_statuses(db, reservations).items():
        checks.append(CheckResult(f"{table}:unknown_status", unknown == 0, f"count={unknown}"))
    return checks


def _print_results(title: str, rows: Iterable[CheckResult]) -> None:
    _print_section(title)
    for row in rows:
        status = "OK" if row.ok else "FAIL"
        print(f"[{status}] {row.name} :: {row.detail}")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="LogiScan reservation integrity checks")
    parser.add_argument("--db-url", default=os.environ.get("LOGISCAN_DB_URL", ""))
    args = parser.parse_args(argv)

    db_url = (args.db_url or "").strip()
    if not db_url:
        print("LOGISCAN_DB_URL is not set. Provide --db-url or export env first.")
        return 2

    try:
        engine = _get_engine(db_url)
        _scalar(engine, "SELECT 1")
    except Exception as exc:
        print(f"Could not connect to DB: {exc}")
        return 3

    existence = run_existence_checks(engine)
    _print_results("Table Existence", existence)
    if not all(row.ok for row in existence):
        return 1

    with Session(engine) as db:
        integrity = run_integrity_checks(db)
    _print_results("Integrity Checks", integrity)
    return 0 if all(row.ok for row in integrity) else 1


if __name__ == "__main__":
    sys.exit(main())
