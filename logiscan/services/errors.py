from __future__ import annotations

from typing import Any


class LogisticsError(Exception):
    """Base class for every domain failure raised by the logistics core."""

    code = "logistics_error"

    def to_detail(self) -> dict[str, Any]:
        return {"code": self.code, "message": str(self)}


class ReservationError(LogisticsError):
    code = "reservation_error"


class InsufficientStock(ReservationError):
    code = "insufficient_stock"

    def __init__(self, available: int, requested: int, sku: str | None = None):
        self.available = available
        self.requested = requested
        self.sku = sku
        label = f" for '{sku}'" if sku else ""
        super().__init__(f"Insufficient stock{label}: {available} available out of {requested} requested")

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail.update({"available": self.available, "requested": self.requested, "sku": self.sku})
        return detail


class ReservationFailed(ReservationError):
    code = "reservation_failed"

    def __init__(self, message: str = "Reservation of assets failed"):
        super().__init__(message)


class AssetNotFound(ReservationError):
    code = "asset_not_found"

    def __init__(self, asset_id: str):
        self.asset_id = asset_id
        super().__init__(f"Asset {asset_id} not found")

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail["assetID"] = self.asset_id
        return detail


class ConflictDetected(ReservationError):
    code = "conflict_detected"

    def __init__(self, asset_ids: list[str]):
        self.asset_ids = list(asset_ids)
        super().__init__(f"Reservation conflict detected for assets: {', '.join(self.asset_ids)}")

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail["assetIDs"] = self.asset_ids
        return detail


class QuoteValidationError(LogisticsError):
    code = "quote_validation_error"


class TruckNotFound(QuoteValidationError):
    code = "truck_not_found"

    def __init__(self, truck_id: str):
        self.truck_id = truck_id
        super().__init__(f"Truck {truck_id} not found")

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail["truckID"] = self.truck_id
        return detail


class TruckUnavailable(QuoteValidationError):
    code = "truck_unavailable"

    def __init__(self, truck_name: str, conflicting_event: str):
        self.truck_name = truck_name
        self.conflicting_event = conflicting_event
        super().__init__(f"Truck '{truck_name}' is not available. Conflict with event '{conflicting_event}'")

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail.update({"truckName": self.truck_name, "conflictingEvent": self.conflicting_event})
        return detail


class TaskError(LogisticsError):
    code = "task_error"


class TaskNotFound(TaskError):
    code = "task_not_found"

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task {task_id} not found")


class InvalidTaskTransition(TaskError):
    code = "invalid_task_transition"

    def __init__(self, task_id: str, current: str, target: str):
        self.task_id = task_id
        self.current = current
        self.target = target
        super().__init__(f"Invalid task transition for {task_id}: {current} -> {target}")

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail.update({"taskID": self.task_id, "current": self.current, "target": self.target})
        return detail


class ScanListError(LogisticsError):
    code = "scan_list_error"

    def __init__(self, scan_list_id: str, message: str):
        self.scan_list_id = scan_list_id
        super().__init__(message)

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail["scanListID"] = self.scan_list_id
        return detail


class ScanListAlreadyCompleted(ScanListError):
    code = "scan_list_already_completed"

    def __init__(self, scan_list_id: str):
        super().__init__(scan_list_id, f"Scan list {scan_list_id} is already completed")


class ScanListNotActive(ScanListError):
    code = "scan_list_not_active"

    def __init__(self, scan_list_id: str, status: str):
        self.status = status
        super().__init__(scan_list_id, f"Scan list {scan_list_id} is not active (status {status})")


class AssetNotExpected(ScanListError):
    code = "asset_not_expected"

    def __init__(self, scan_list_id: str, asset_id: str):
        self.asset_id = asset_id
        super().__init__(scan_list_id, f"Asset {asset_id} is not expected in scan list {scan_list_id}")

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail["assetID"] = self.asset_id
        return detail


class AssetAlreadyScanned(ScanListError):
    code = "asset_already_scanned"

    def __init__(self, scan_list_id: str, asset_id: str):
        self.asset_id = asset_id
        super().__init__(scan_list_id, f"Asset {asset_id} was already scanned in scan list {scan_list_id}")

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail["assetID"] = self.asset_id
        return detail


class QuantityExceeded(ScanListError):
    code = "quantity_exceeded"

    def __init__(self, scan_list_id: str, total_items: int):
        self.total_items = total_items
        super().__init__(scan_list_id, f"Scan list {scan_list_id} already holds its {total_items} item(s)")
