import logging
import os
from datetime import datetime

from dotenv import load_dotenv

load_dotenv()

from fastapi import Depends, FastAPI, Header, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.orm import Session

from logiscan.db.deps import get_db
from logiscan.models.logistics_models import Asset, AuditLog, QuoteItem, ScanList
from logiscan.schemas.quotes import AdjustQuoteItemRequest, AvailabilityBatchRequest, ValidateQuoteRequest
from logiscan.schemas.scans import AssetScanRequest
from logiscan.schemas.tasks import BuildTaskChainRequest, CancelTaskRequest
from logiscan.services.availability_service import check_availability, check_availability_batch
from logiscan.services.errors import (
    AssetAlreadyScanned,
    AssetNotExpected,
    AssetNotFound,
    ConflictDetected,
    InsufficientStock,
    InvalidTaskTransition,
    LogisticsError,
    QuantityExceeded,
    ReservationFailed,
    ScanListAlreadyCompleted,
    ScanListNotActive,
    TaskNotFound,
    TruckNotFound,
    TruckUnavailable,
)
from logiscan.services.lifecycle_service import (
    complete_scan_list,
    record_asset_scan,
    serialize_scan_list,
    validate_quote,
)
from logiscan.services.notification_service import (
    OutboxDispatcher,
    dispatch_intents,
    list_pending_notifications,
    serialize_notification,
)
from logiscan.services.repositories import (
    find_all_reservations,
    find_assets_by_sku,
    find_event,
    find_stock_item,
    find_task,
    find_truck,
    get_assigned_assets,
)
from logiscan.services.reservation_service import adjust_reservations, release_one_asset, release_reservations
from logiscan.services.task_service import (
    TaskSpec,
    build_task_chain,
    cancel_task,
    complete_task,
    serialize_task,
    start_task,
)
from logiscan.services.truck_status_service import update_truck_status


logging.basicConfig(level=(os.environ.get("LOG_LEVEL") or "INFO").upper())
API_LOGGER = logging.getLogger("logiscan.api")

app = FastAPI(title="LogiScan")


def _parse_csv_env(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [item.strip() for item in str(raw).split(",") if item.strip()]


_CORS_ALLOW_ORIGINS = _parse_csv_env("CORS_ALLOW_ORIGINS", "http://127.0.0.1,http://localhost")
_CORS_ALLOW_CREDENTIALS = str(os.environ.get("CORS_ALLOW_CREDENTIALS", "true")).strip().lower() in {"1", "true", "yes", "on"}
if "*" in _CORS_ALLOW_ORIGINS:
    # Browsers reject wildcard origins with credentials.
    _CORS_ALLOW_CREDENTIALS = False

app.add_middleware(
    CORSMiddleware,
    allow_origins=_CORS_ALLOW_ORIGINS,
    allow_credentials=_CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)

SYSTEM_ACTOR = "system"
ERROR_STATUS_CODES = {
    InsufficientStock: 409,
    ConflictDetected: 409,
    TruckUnavailable: 409,
    TruckNotFound: 404,
    AssetNotFound: 404,
    TaskNotFound: 404,
    InvalidTaskTransition: 400,
    AssetNotExpected: 409,
    AssetAlreadyScanned: 409,
    QuantityExceeded: 409,
    ScanListAlreadyCompleted: 409,
    ScanListNotActive: 400,
    ReservationFailed: 500,
}


def log_audit(db: Session, entity_type: str, entity_id: str, action: str, details: str | None = None, user_id: str | None = None) -> None:
    db.add(
        AuditLog(
            EntityType=entity_type,
            EntityID=str(entity_id),
            Action=action,
            Details=details,
            UserID=user_id,
            CreatedAt=datetime.now(),
        )
    )


def _http_error(exc: LogisticsError) -> HTTPException:
    status_code = 400
    for error_type, code in ERROR_STATUS_CODES.items():
        if isinstance(exc, error_type):
            status_code = code
            break
    return HTTPException(status_code=status_code, detail=exc.to_detail())


def _resolve_actor_user_id(candidate_user_id: str | None, header_user_id: str | None) -> str:
    for value in (candidate_user_id, header_user_id):
        if value and str(value).strip():
            return str(value).strip()
    return SYSTEM_ACTOR


def _require_event_or_404(db: Session, event_id: str):
    event = find_event(db, event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


def _require_quote_item_or_404(db: Session, event_id: str, quote_item_id: int) -> QuoteItem:
    quote_item = db.get(QuoteItem, quote_item_id)
    if not quote_item or quote_item.EventID != event_id:
        raise HTTPException(status_code=404, detail="Quote item not found")
    return quote_item


def _require_stock_item_or_404(db: Session, sku: str):
    stock_item = find_stock_item(db, sku)
    if not stock_item:
        raise HTTPException(status_code=404, detail=f"Stock item {sku} not found")
    return stock_item


def _require_task_or_404(db: Session, task_id: str):
    task = find_task(db, task_id)
    if not task:
        raise HTTPException(status_code=404, detail=TaskNotFound(task_id).to_detail())
    return task


def _serialize_quote_item(quote_item: QuoteItem) -> dict:
    return {
        "quoteItemID": quote_item.QuoteItemID,
        "eventID": quote_item.EventID,
        "sku": quote_item.SKU,
        "name": quote_item.Name,
        "quantity": quote_item.Quantity,
        "assignedAssets": get_assigned_assets(quote_item),
    }


def _deliver_intents(db: Session, intents: list) -> int:
    if not intents:
        return 0
    delivered = dispatch_intents(OutboxDispatcher(db), intents)
    db.commit()
    if delivered < len(intents):
        API_LOGGER.warning("Delivered %s of %s notification(s)", delivered, len(intents))
    return delivered


@app.get("/healthz")
def healthcheck():
    return {"status": "ok"}


@app.get("/api/healthz")
def healthcheck_api(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
    except Exception as exc:
        raise HTTPException(status_code=503, detail=f"db_unavailable: {exc}") from exc
    return {"status": "ok"}


@app.get("/api/events/{event_id}/availability")
def get_event_availability(
    event_id: str,
    sku: str = Query(..., alias="sku"),
    quantity: int = Query(1, alias="quantity"),
    db: Session = Depends(get_db),
):
    event = _require_event_or_404(db, event_id)
    stock_item = _require_stock_item_or_404(db, sku)
    result = check_availability(
        stock_item,
        event,
        max(0, int(quantity)),
        find_assets_by_sku(db, sku),
        find_all_reservations(db),
    )
    payload = result.to_dict()
    payload["sku"] = sku
    payload["eventID"] = event_id
    return payload


@app.post("/api/events/{event_id}/availability/batch")
def get_event_availability_batch(event_id: str, payload: AvailabilityBatchRequest, db: Session = Depends(get_db)):
    event = _require_event_or_404(db, event_id)
    stock_items = []
    unknown_skus = []
    for sku in payload.quantities:
        stock_item = find_stock_item(db, sku)
        if stock_item is None:
            unknown_skus.append(sku)
            continue
        stock_items.append(stock_item)

    all_assets = []
    for stock_item in stock_items:
        all_assets.extend(find_assets_by_sku(db, stock_item.SKU))
    results = check_availability_batch(stock_items, event, payload.quantities, all_assets, find_all_reservations(db))
    return {
        "eventID": event_id,
        "results": {sku: result.to_dict() for sku, result in results.items()},
        "unknownSkus": unknown_skus,
        "canFulfillAll": not unknown_skus and all(result.can_fulfill for result in results.values()),
    }


@app.post("/api/events/{event_id}/quote-items/{quote_item_id}/adjust")
def adjust_quote_item(
    event_id: str,
    quote_item_id: int,
    payload: AdjustQuoteItemRequest,
    db: Session = Depends(get_db),
    x_actor_user_id: str | None = Header(None, alias="X-Actor-User-ID"),
):
    if payload.quantity < 0:
        raise HTTPException(status_code=400, detail="quantity must be zero or more.")
    event = _require_event_or_404(db, event_id)
    quote_item = _require_quote_item_or_404(db, event_id, quote_item_id)
    stock_item = _require_stock_item_or_404(db, quote_item.SKU)
    actor = _resolve_actor_user_id(None, x_actor_user_id)

    try:
        adjust_reservations(
            db,
            quote_item,
            stock_item,
            payload.quantity,
            event,
            find_assets_by_sku(db, quote_item.SKU),
            find_all_reservations(db),
        )
    except LogisticsError as exc:
        db.rollback()
        raise _http_error(exc) from exc

    quote_item.Quantity = payload.quantity
    log_audit(db, "QuoteItem", quote_item_id, "AdjustReservations", f"quantity={payload.quantity}", user_id=actor)
    db.commit()
    return _serialize_quote_item(quote_item)


@app.post("/api/events/{event_id}/quote-items/{quote_item_id}/release-one")
def release_one_quote_asset(
    event_id: str,
    quote_item_id: int,
    db: Session = Depends(get_db),
    x_actor_user_id: str | None = Header(None, alias="X-Actor-User-ID"),
):
    event = _require_event_or_404(db, event_id)
    quote_item = _require_quote_item_or_404(db, event_id, quote_item_id)
    actor = _resolve_actor_user_id(None, x_actor_user_id)

    try:
        released = release_one_asset(db, quote_item, event)
    except LogisticsError as exc:
        db.rollback()
        raise _http_error(exc) from exc

    if released:
        quote_item.Quantity = max(0, int(quote_item.Quantity or 0) - 1)
        log_audit(db, "QuoteItem", quote_item_id, "ReleaseOneAsset", f"asset={released}", user_id=actor)
    db.commit()
    return {"releasedAssetID": released, "quoteItem": _serialize_quote_item(quote_item)}


@app.delete("/api/events/{event_id}/quote-items/{quote_item_id}")
def delete_quote_item(
    event_id: str,
    quote_item_id: int,
    db: Session = Depends(get_db),
    x_actor_user_id: str | None = Header(None, alias="X-Actor-User-ID"),
):
    event = _require_event_or_404(db, event_id)
    quote_item = _require_quote_item_or_404(db, event_id, quote_item_id)
    actor = _resolve_actor_user_id(None, x_actor_user_id)

    try:
        released = release_reservations(db, quote_item, event)
    except LogisticsError as exc:
        db.rollback()
        raise _http_error(exc) from exc

    db.delete(quote_item)
    log_audit(db, "QuoteItem", quote_item_id, "RemoveLine", f"released={released}", user_id=actor)
    db.commit()
    return {"message": "Quote item removed", "releasedCount": released}


@app.post("/api/events/{event_id}/validate-quote")
def validate_event_quote(
    event_id: str,
    payload: ValidateQuoteRequest,
    db: Session = Depends(get_db),
    x_actor_user_id: str | None = Header(None, alias="X-Actor-User-ID"),
):
    event = _require_event_or_404(db, event_id)
    actor = _resolve_actor_user_id(payload.operatorUserID, x_actor_user_id)
    try:
        outcome = validate_quote(
            db,
            event,
            actor,
            with_scan_lists=payload.generateScanLists,
            generate_tasks=payload.generateTasks,
        )
    except LogisticsError as exc:
        API_LOGGER.info("Quote validation for event %s rejected: %s", event_id, exc)
        raise _http_error(exc) from exc

    log_audit(db, "Event", event_id, "ValidateQuote", f"lines={len(outcome.assigned_by_line)}", user_id=actor)
    db.commit()
    return outcome.to_dict()


@app.post("/api/scan-lists/{scan_list_id}/scan")
def scan_asset(scan_list_id: str, payload: AssetScanRequest, db: Session = Depends(get_db)):
    scan_list = db.get(ScanList, scan_list_id)
    if not scan_list:
        raise HTTPException(status_code=404, detail="Scan list not found")
    asset = db.get(Asset, payload.assetID)
    if not asset:
        raise HTTPException(status_code=404, detail=AssetNotFound(payload.assetID).to_detail())

    try:
        record_asset_scan(db, scan_list, asset)
    except LogisticsError as exc:
        db.rollback()
        API_LOGGER.info("Scan of %s into %s rejected: %s", payload.assetID, scan_list_id, exc)
        raise _http_error(exc) from exc
    db.commit()
    return {
        "scanList": serialize_scan_list(scan_list),
        "asset": {"assetID": asset.AssetID, "status": asset.Status},
    }


@app.post("/api/scan-lists/{scan_list_id}/complete")
def complete_event_scan_list(
    scan_list_id: str,
    db: Session = Depends(get_db),
    x_actor_user_id: str | None = Header(None, alias="X-Actor-User-ID"),
):
    scan_list = db.get(ScanList, scan_list_id)
    if not scan_list:
        raise HTTPException(status_code=404, detail="Scan list not found")
    actor = _resolve_actor_user_id(None, x_actor_user_id)

    try:
        intents = complete_scan_list(db, scan_list)
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except LogisticsError as exc:
        db.rollback()
        raise _http_error(exc) from exc
    event = find_event(db, scan_list.EventID)
    if event is not None and event.AssignedTruckID:
        truck = find_truck(db, event.AssignedTruckID)
        if truck is not None:
            update_truck_status(db, truck)
    log_audit(db, "ScanList", scan_list_id, "CompleteScanList", scan_list.Direction, user_id=actor)
    db.commit()

    delivered = _deliver_intents(db, intents)
    return {"scanList": serialize_scan_list(scan_list), "notificationsQueued": delivered}


@app.post("/api/events/{event_id}/task-chain")
def create_task_chain(
    event_id: str,
    payload: BuildTaskChainRequest,
    db: Session = Depends(get_db),
    x_actor_user_id: str | None = Header(None, alias="X-Actor-User-ID"),
):
    _require_event_or_404(db, event_id)
    if not payload.tasks:
        raise HTTPException(status_code=400, detail="No tasks supplied.")
    actor = _resolve_actor_user_id(None, x_actor_user_id)

    specs = [
        TaskSpec(
            title=item.title,
            task_type=item.type,
            description=item.description,
            assigned_user_id=item.assignedUserID,
            scan_list_id=item.scanListID,
            truck_id=item.truckID,
            location=item.location,
            trigger_notification=item.triggerNotification,
            blocked=item.blocked,
        )
        for item in payload.tasks
    ]
    tasks = build_task_chain(db, event_id, specs, created_by=actor)
    log_audit(db, "Event", event_id, "BuildTaskChain", f"tasks={len(tasks)}", user_id=actor)
    db.commit()
    return [serialize_task(task) for task in tasks]


@app.post("/api/tasks/{task_id}/start")
def start_event_task(
    task_id: str,
    db: Session = Depends(get_db),
    x_actor_user_id: str | None = Header(None, alias="X-Actor-User-ID"),
):
    task = _require_task_or_404(db, task_id)
    actor = _resolve_actor_user_id(None, x_actor_user_id)
    try:
        intents = start_task(db, task, actor)
    except LogisticsError as exc:
        db.rollback()
        raise _http_error(exc) from exc
    db.commit()
    _deliver_intents(db, intents)
    return serialize_task(task)


@app.post("/api/tasks/{task_id}/complete")
def complete_event_task(task_id: str, db: Session = Depends(get_db)):
    task = _require_task_or_404(db, task_id)
    try:
        intents = complete_task(db, task)
    except LogisticsError as exc:
        db.rollback()
        raise _http_error(exc) from exc
    db.commit()
    delivered = _deliver_intents(db, intents)
    return {"task": serialize_task(task), "notificationsQueued": delivered}


@app.post("/api/tasks/{task_id}/cancel")
def cancel_event_task(task_id: str, payload: CancelTaskRequest, db: Session = Depends(get_db)):
    task = _require_task_or_404(db, task_id)
    try:
        intents = cancel_task(db, task, payload.reason)
    except LogisticsError as exc:
        db.rollback()
        raise _http_error(exc) from exc
    db.commit()
    _deliver_intents(db, intents)
    return serialize_task(task)


@app.get("/api/notifications/pending")
def get_pending_notifications(
    recipient_user_id: str | None = Query(None, alias="recipientUserID"),
    db: Session = Depends(get_db),
):
    return [serialize_notification(n) for n in list_pending_notifications(db, recipient_user_id)]


@app.get("/api/trucks/{truck_id}/status")
def get_truck_status(truck_id: str, db: Session = Depends(get_db)):
    truck = find_truck(db, truck_id)
    if not truck:
        raise HTTPException(status_code=404, detail=TruckNotFound(truck_id).to_detail())
    status = update_truck_status(db, truck)
    db.commit()
    return {"truckID": truck.TruckID, "name": truck.Name, "status": status}


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
