from __future__ import annotations

import json

from sqlalchemy import select
from sqlalchemy.orm import Session

from logiscan.models.logistics_models import (
    Asset,
    AssetReservation,
    Event,
    QuoteItem,
    ScanList,
    StockItem,
    TodoTask,
    Truck,
)
from logiscan.models.statuses import EVENT_CANCELLED, EVENT_COMPLETED, SCAN_DIRECTIONS


def find_all_assets(db: Session) -> list[Asset]:
    return list(db.execute(select(Asset).order_by(Asset.AssetID)).scalars().all())


def find_assets_by_sku(db: Session, sku: str) -> list[Asset]:
    return list(
        db.execute(select(Asset).where(Asset.SKU == sku).order_by(Asset.AssetID)).scalars().all()
    )


def find_assets_by_ids(db: Session, asset_ids: list[str]) -> list[Asset]:
    if not asset_ids:
        return []
    return list(db.execute(select(Asset).where(Asset.AssetID.in_(asset_ids))).scalars().all())


def find_all_reservations(db: Session) -> list[AssetReservation]:
    return list(db.execute(select(AssetReservation)).scalars().all())


def find_reservations_by_event(db: Session, event_id: str) -> list[AssetReservation]:
    return list(
        db.execute(select(AssetReservation).where(AssetReservation.EventID == event_id)).scalars().all()
    )


def find_reservations_by_assets(db: Session, asset_ids: list[str]) -> list[AssetReservation]:
    if not asset_ids:
        return []
    return list(
        db.execute(select(AssetReservation).where(AssetReservation.AssetID.in_(asset_ids))).scalars().all()
    )


def find_stock_item(db: Session, sku: str) -> StockItem | None:
    return db.get(StockItem, sku)


def find_event(db: Session, event_id: str) -> Event | None:
    return db.get(Event, event_id)


def find_truck(db: Session, truck_id: str) -> Truck | None:
    return db.get(Truck, truck_id)


def find_events_by_truck(db: Session, truck_id: str, exclude_event_id: str | None = None) -> list[Event]:
    stmt = select(Event).where(Event.AssignedTruckID == truck_id).where(Event.Status != EVENT_CANCELLED)
    if exclude_event_id:
        stmt = stmt.where(Event.EventID != exclude_event_id)
    return list(db.execute(stmt).scalars().all())


def find_active_events_by_truck(db: Session, truck_id: str) -> list[Event]:
    return [event for event in find_events_by_truck(db, truck_id) if event.Status != EVENT_COMPLETED]


def find_quote_items_by_event(db: Session, event_id: str) -> list[QuoteItem]:
    return list(
        db.execute(
            select(QuoteItem).where(QuoteItem.EventID == event_id).order_by(QuoteItem.QuoteItemID)
        ).scalars().all()
    )


def find_scan_lists_by_event(db: Session, event_id: str) -> list[ScanList]:
    return list(db.execute(select(ScanList).where(ScanList.EventID == event_id)).scalars().all())


def find_task(db: Session, task_id: str) -> TodoTask | None:
    return db.get(TodoTask, task_id)


def find_task_by_scan_list(db: Session, scan_list_id: str) -> TodoTask | None:
    return db.execute(select(TodoTask).where(TodoTask.ScanListID == scan_list_id)).scalars().first()


def find_chain_task(db: Session, chain_id: str | None, index: int | None) -> TodoTask | None:
    if chain_id is None or index is None or index < 0:
        return None
    return db.execute(
        select(TodoTask).where(TodoTask.ChainID == chain_id).where(TodoTask.ChainIndex == index)
    ).scalars().first()


def parse_id_list(raw: str | None) -> list[str]:
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError, json.JSONDecodeError):
        return []
    if not isinstance(parsed, list):
        return []
    return [str(value) for value in parsed if value is not None]


def get_assigned_assets(quote_item: QuoteItem) -> list[str]:
    return parse_id_list(quote_item.AssignedAssets)


def set_assigned_assets(quote_item: QuoteItem, asset_ids: list[str]) -> None:
    quote_item.AssignedAssets = json.dumps(list(asset_ids), ensure_ascii=True)


def get_scanned_assets(scan_list: ScanList) -> list[str]:
    return parse_id_list(scan_list.ScannedAssets)


def set_scanned_assets(scan_list: ScanList, asset_ids: list[str]) -> None:
    scan_list.ScannedAssets = json.dumps(list(asset_ids), ensure_ascii=True)


def get_selected_scan_directions(event: Event) -> list[str]:
    if event.SelectedScanDirections is None:
        return list(SCAN_DIRECTIONS)
    return parse_id_list(event.SelectedScanDirections)
