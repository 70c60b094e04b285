from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from logiscan.models.logistics_models import Asset, AssetReservation, Event, QuoteItem, StockItem
from logiscan.models.statuses import (
    ASSET_AVAILABLE,
    ASSET_RESERVED,
    INACTIVE_RESERVATION_STATES,
    RESERVATION_CANCELLED,
    RESERVATION_PENDING,
)
from logiscan.services.allocation_service import select_best_assets
from logiscan.services.availability_service import is_conflicting_reservation
from logiscan.services.errors import ConflictDetected, InsufficientStock, ReservationFailed
from logiscan.services.locks import event_lock, reservation_lock
from logiscan.services.repositories import (
    find_assets_by_ids,
    find_reservations_by_assets,
    find_reservations_by_event,
    get_assigned_assets,
    set_assigned_assets,
)


LOGGER = logging.getLogger("logiscan.reservations")


def has_conflicting_reservation(asset: Asset, event: Event, reservations: Iterable[AssetReservation]) -> bool:
    return any(
        reservation.AssetID == asset.AssetID
        and is_conflicting_reservation(reservation, event.StartDate, event.EndDate, event.EventID)
        for reservation in reservations
    )


def _eligible_assets(
    stock_item: StockItem,
    event: Event,
    all_assets: Iterable[Asset],
    reservations: list[AssetReservation],
    excluding_asset_ids: Iterable[str] = (),
) -> list[Asset]:
    excluded = set(excluding_asset_ids)
    # An asset already held by this event (another line, same SKU) must not get a second record.
    excluded.update(
        reservation.AssetID
        for reservation in reservations
        if reservation.EventID == event.EventID and reservation.Status != RESERVATION_CANCELLED
    )
    return [
        asset
        for asset in all_assets
        if asset.SKU == stock_item.SKU
        and asset.AssetID not in excluded
        and not has_conflicting_reservation(asset, event, reservations)
    ]


def _new_reservation(asset: Asset, event: Event) -> AssetReservation:
    return AssetReservation(
        ReservationID=str(uuid.uuid4()),
        AssetID=asset.AssetID,
        EventID=event.EventID,
        StartDate=event.StartDate,
        EndDate=event.EndDate,
        Status=RESERVATION_PENDING,
    )


def _assert_no_store_conflicts(db: Session, event: Event, asset_ids: list[str]) -> None:
    conflicting = set()
    for reservation in find_reservations_by_assets(db, asset_ids):
        if reservation.Status == RESERVATION_CANCELLED:
            continue
        if reservation.EventID == event.EventID:
            conflicting.add(reservation.AssetID)
            continue
        if is_conflicting_reservation(reservation, event.StartDate, event.EndDate, event.EventID):
            conflicting.add(reservation.AssetID)
    if conflicting:
        raise ConflictDetected(sorted(conflicting))


def _flush_or_rollback(db: Session) -> None:
    try:
        db.flush()
    except SQLAlchemyError as exc:
        db.rollback()
        LOGGER.exception("Reservation write failed, session rolled back")
        raise ReservationFailed(f"Reservation write failed: {exc.__class__.__name__}") from exc


def _stage_reservations(db: Session, event: Event, assets: list[Asset]) -> list[str]:
    asset_ids = [asset.AssetID for asset in assets]
    _assert_no_store_conflicts(db, event, asset_ids)
    now = datetime.now()
    for asset in assets:
        db.add(_new_reservation(asset, event))
        if asset.Status == ASSET_AVAILABLE:
            asset.Status = ASSET_RESERVED
            asset.UpdatedDate = now
    _flush_or_rollback(db)
    return asset_ids


def _release_assets_for_event(db: Session, event: Event, asset_ids: list[str]) -> int:
    if not asset_ids:
        return 0
    wanted = set(asset_ids)
    released = 0
    for reservation in find_reservations_by_event(db, event.EventID):
        if reservation.AssetID in wanted:
            db.delete(reservation)
            released += 1
    _flush_or_rollback(db)
    _restore_released_asset_status(db, asset_ids)
    return released


def _restore_released_asset_status(db: Session, asset_ids: list[str]) -> None:
    still_held = {
        reservation.AssetID
        for reservation in find_reservations_by_assets(db, asset_ids)
        if reservation.Status not in INACTIVE_RESERVATION_STATES
    }
    now = datetime.now()
    for asset in find_assets_by_ids(db, asset_ids):
        if asset.Status == ASSET_RESERVED and asset.AssetID not in still_held:
            asset.Status = ASSET_AVAILABLE
            asset.UpdatedDate = now


def reserve_assets(
    db: Session,
    quote_item: QuoteItem,
    stock_item: StockItem,
    event: Event,
    all_assets: Iterable[Asset],
    existing_reservations: Iterable[AssetReservation],
) -> list[str]:
    requested = int(quote_item.Quantity or 0)
    with reservation_lock(event.EventID, stock_item.SKU):
        reservations = list(existing_reservations)
        candidates = _eligible_assets(stock_item, event, all_assets, reservations)
        LOGGER.info(
            "Reserving sku=%s event=%s requested=%s eligible=%s",
            stock_item.SKU,
            event.EventID,
            requested,
            len(candidates),
        )
        if len(candidates) < requested:
            raise InsufficientStock(available=len(candidates), requested=requested, sku=stock_item.SKU)

        selected = select_best_assets(candidates, requested)
        assigned_ids = _stage_reservations(db, event, selected)
        set_assigned_assets(quote_item, assigned_ids)
        return assigned_ids


def release_reservations(db: Session, quote_item: QuoteItem, event: Event) -> int:
    with event_lock(event.EventID):
        assigned = get_assigned_assets(quote_item)
        released = _release_assets_for_event(db, event, assigned)
        set_assigned_assets(quote_item, [])
        LOGGER.info("Released %s reservation(s) for quote item %s", released, quote_item.QuoteItemID)
        return released


def release_one_asset(db: Session, quote_item: QuoteItem, event: Event) -> str | None:
    with event_lock(event.EventID):
        assigned = get_assigned_assets(quote_item)
        if not assigned:
            LOGGER.warning("No assigned asset to release for quote item %s", quote_item.QuoteItemID)
            return None

        asset_id = assigned[-1]
        released = _release_assets_for_event(db, event, [asset_id])
        set_assigned_assets(quote_item, assigned[:-1])
        if not released:
            LOGGER.warning("Asset %s had no reservation for event %s", asset_id, event.EventID)
            return None
        return asset_id


def adjust_reservations(
    db: Session,
    quote_item: QuoteItem,
    stock_item: StockItem,
    new_quantity: int,
    event: Event,
    all_assets: Iterable[Asset],
    all_reservations: Iterable[AssetReservation],
) -> list[str]:
    with reservation_lock(event.EventID, stock_item.SKU):
        current = get_assigned_assets(quote_item)
        LOGGER.info("Adjusting reservations for quote item %s: %s -> %s", quote_item.QuoteItemID, len(current), new_quantity)

        if new_quantity > len(current):
            additional_quantity = new_quantity - len(current)
            reservations = list(all_reservations)
            candidates = _eligible_assets(stock_item, event, all_assets, reservations, excluding_asset_ids=current)
            if len(candidates) < additional_quantity:
                raise InsufficientStock(
                    available=len(candidates),
                    requested=additional_quantity,
                    sku=stock_item.SKU,
                )
            selected = select_best_assets(candidates, additional_quantity)
            additional_ids = _stage_reservations(db, event, selected)
            adjusted = current + additional_ids
            set_assigned_assets(quote_item, adjusted)
            return adjusted

        if new_quantity < len(current):
            keep_count = max(0, new_quantity)
            kept = current[:keep_count]
            _release_assets_for_event(db, event, current[keep_count:])
            set_assigned_assets(quote_item, kept)
            return kept

        return current
