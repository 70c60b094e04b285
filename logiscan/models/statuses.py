ASSET_AVAILABLE = "Available"
ASSET_RESERVED = "Reserved"
ASSET_IN_USE = "InUse"
ASSET_IN_TRANSIT_TO_EVENT = "InTransitToEvent"
ASSET_IN_TRANSIT_TO_STOCK = "InTransitToStock"
ASSET_DAMAGED = "Damaged"
ASSET_MAINTENANCE = "Maintenance"
ASSET_LOST = "Lost"

ASSET_STATES = {
    ASSET_AVAILABLE,
    ASSET_RESERVED,
    ASSET_IN_USE,
    ASSET_IN_TRANSIT_TO_EVENT,
    ASSET_IN_TRANSIT_TO_STOCK,
    ASSET_DAMAGED,
    ASSET_MAINTENANCE,
    ASSET_LOST,
}

RESERVATION_PENDING = "Pending"
RESERVATION_CONFIRMED = "Confirmed"
RESERVATION_LOADED = "Loaded"
RESERVATION_DELIVERED = "Delivered"
RESERVATION_RETURNED = "Returned"
RESERVATION_CANCELLED = "Cancelled"

RESERVATION_STATES = {
    RESERVATION_PENDING,
    RESERVATION_CONFIRMED,
    RESERVATION_LOADED,
    RESERVATION_DELIVERED,
    RESERVATION_RETURNED,
    RESERVATION_CANCELLED,
}
# Reservations that no longer hold their asset.
INACTIVE_RESERVATION_STATES = {RESERVATION_RETURNED, RESERVATION_CANCELLED}

EVENT_PLANNING = "Planning"
EVENT_CONFIRMED = "Confirmed"
EVENT_IN_PROGRESS = "InProgress"
EVENT_COMPLETED = "Completed"
EVENT_CANCELLED = "Cancelled"

EVENT_STATES = {EVENT_PLANNING, EVENT_CONFIRMED, EVENT_IN_PROGRESS, EVENT_COMPLETED, EVENT_CANCELLED}

QUOTE_DRAFT = "Draft"
QUOTE_FINALIZED = "Finalized"

TRUCK_AVAILABLE = "Available"
TRUCK_LOADING = "Loading"
TRUCK_EN_ROUTE = "EnRoute"
TRUCK_ON_SITE = "OnSite"
TRUCK_RETURNING = "Returning"
TRUCK_MAINTENANCE = "Maintenance"

STOCK_TO_TRUCK = "StockToTruck"
TRUCK_TO_EVENT = "TruckToEvent"
EVENT_TO_TRUCK = "EventToTruck"
TRUCK_TO_STOCK = "TruckToStock"

# Custody order of a full round trip.
SCAN_DIRECTIONS = [STOCK_TO_TRUCK, TRUCK_TO_EVENT, EVENT_TO_TRUCK, TRUCK_TO_STOCK]

SCAN_LIST_PENDING = "Pending"
SCAN_LIST_IN_PROGRESS = "InProgress"
SCAN_LIST_COMPLETED = "Completed"
SCAN_LIST_CANCELLED = "Cancelled"

TASK_PENDING = "Pending"
TASK_BLOCKED = "Blocked"
TASK_IN_PROGRESS = "InProgress"
TASK_COMPLETED = "Completed"
TASK_CANCELLED = "Cancelled"

TASK_TRANSITIONS = {
    TASK_BLOCKED: {TASK_PENDING, TASK_CANCELLED},
    TASK_PENDING: {TASK_IN_PROGRESS, TASK_COMPLETED, TASK_CANCELLED},
    TASK_IN_PROGRESS: {TASK_COMPLETED, TASK_CANCELLED},
    TASK_COMPLETED: set(),
    TASK_CANCELLED: set(),
}

NOTIFY_TASK_READY = "TaskReady"
NOTIFY_TASK_AVAILABLE = "TaskAvailable"
NOTIFY_TASK_COMPLETED = "TaskCompleted"
NOTIFY_TASK_CANCELLED = "TaskCancelled"
NOTIFY_TASK_STARTED = "TaskStarted"
