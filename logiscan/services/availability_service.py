from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Iterable

from logiscan.models.logistics_models import Asset, AssetReservation, Event, StockItem
from logiscan.models.statuses import RESERVATION_CANCELLED
from logiscan.services.dates import overlaps


LOGGER = logging.getLogger("logiscan.availability")

WARNING_MARGIN = int(os.environ.get("LOGISCAN_WARNING_MARGIN") or "2")

SEVERITY_OK = "ok"
SEVERITY_WARNING = "warning"
SEVERITY_CRITICAL = "critical"


@dataclass
class AvailabilityResult:
    requested_quantity: int
    available_quantity: int
    total_quantity: int
    reserved_quantity: int
    conflicts: list[AssetReservation] = field(default_factory=list)
    can_fulfill: bool = True
    warning_margin: int = WARNING_MARGIN

    @property
    def severity(self) -> str:
        if not self.can_fulfill:
            return SEVERITY_CRITICAL
        if self.available_quantity < self.requested_quantity + self.warning_margin:
            return SEVERITY_WARNING
        return SEVERITY_OK

    @property
    def warning(self) -> str | None:
        if not self.can_fulfill:
            return f"Insufficient stock: {self.available_quantity}/{self.requested_quantity} available"
        if self.conflicts:
            return f"Warning: {len(self.conflicts)} asset(s) already reserved"
        return None

    @property
    def availability_percentage(self) -> float:
        if self.total_quantity <= 0:
            return 0.0
        return self.available_quantity / self.total_quantity

    def to_dict(self) -> dict:
        return {
            "requestedQuantity": self.requested_quantity,
            "availableQuantity": self.available_quantity,
            "totalQuantity": self.total_quantity,
            "reservedQuantity": self.reserved_quantity,
            "canFulfill": self.can_fulfill,
            "severity": self.severity,
            "warning": self.warning,
            "availabilityPercentage": self.availability_percentage,
            "conflicts": [
                {
                    "reservationID": reservation.ReservationID,
                    "assetID": reservation.AssetID,
                    "eventID": reservation.EventID,
                    "startDate": reservation.StartDate,
                    "endDate": reservation.EndDate,
                    "status": reservation.Status,
                }
                for reservation in self.conflicts
            ],
        }


def is_conflicting_reservation(
    reservation: AssetReservation,
    start_date,
    end_date,
    excluding_event_id: str,
) -> bool:
    if reservation.EventID == excluding_event_id:
        return False
    if reservation.Status == RESERVATION_CANCELLED:
        return False
    return overlaps(reservation.StartDate, reservation.EndDate, start_date, end_date)


def find_conflicting_reservations(
    assets: Iterable[Asset],
    event: Event,
    reservations: Iterable[AssetReservation],
) -> list[AssetReservation]:
    asset_ids = {asset.AssetID for asset in assets}
    return [
        reservation
        for reservation in reservations
        if reservation.AssetID in asset_ids
        and is_conflicting_reservation(reservation, event.StartDate, event.EndDate, event.EventID)
    ]


def check_availability(
    stock_item: StockItem,
    event: Event,
    requested_quantity: int,
    all_assets: Iterable[Asset],
    all_reservations: Iterable[AssetReservation],
    warning_margin: int | None = None,
) -> AvailabilityResult:
    all_reservations = list(all_reservations)
    item_assets = [asset for asset in all_assets if asset.SKU == stock_item.SKU]

    conflicts = find_conflicting_reservations(item_assets, event, all_reservations)
    busy_ids = {reservation.AssetID for reservation in conflicts}
    available = sum(1 for asset in item_assets if asset.AssetID not in busy_ids)
    reserved = len(item_assets) - available

    # Conflict count is subtracted again from the conflict-free count.
    real_available = max(0, available - len(conflicts))
    can_fulfill = requested_quantity <= real_available

    LOGGER.debug(
        "availability sku=%s event=%s requested=%s total=%s available=%s conflicts=%s",
        stock_item.SKU,
        event.EventID,
        requested_quantity,
        len(item_assets),
        real_available,
        len(conflicts),
    )

    return AvailabilityResult(
        requested_quantity=requested_quantity,
        available_quantity=real_available,
        total_quantity=len(item_assets),
        reserved_quantity=reserved,
        conflicts=conflicts,
        can_fulfill=can_fulfill,
        warning_margin=WARNING_MARGIN if warning_margin is None else warning_margin,
    )


def check_availability_batch(
    stock_items: Iterable[StockItem],
    event: Event,
    requested_quantities: dict[str, int],
    all_assets: Iterable[Asset],
    all_reservations: Iterable[AssetReservation],
) -> dict[str, AvailabilityResult]:
    all_assets = list(all_assets)
    all_reservations = list(all_reservations)
    results: dict[str, AvailabilityResult] = {}
    for item in stock_items:
        results[item.SKU] = check_availability(
            item,
            event,
            int(requested_quantities.get(item.SKU, 0)),
            all_assets,
            all_reservations,
        )
    return results
