import json
import os
from datetime import datetime


os.environ.setdefault("LOGISCAN_DB_URL", "sqlite+pysqlite:///:memory:")

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from logiscan.db.base import Base
from logiscan.models.logistics_models import Asset, Event, QuoteItem, StockItem, Truck


def make_session_factory():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)


def day(number: int) -> datetime:
    return datetime(2026, 3, number, 8, 0)


def seed_stock(db, sku: str, count: int, values=None) -> list[Asset]:
    db.add(StockItem(SKU=sku, Name=f"Item {sku}", Category="Audio"))
    assets = []
    for index in range(count):
        asset = Asset(
            AssetID=f"{sku}-{index + 1:02d}",
            SKU=sku,
            SerialNumber=f"SN-{sku}-{index + 1}",
            Status="Available",
            NeedsMaintenance=False,
            Value=(values[index] if values else 100),
        )
        db.add(asset)
        assets.append(asset)
    db.commit()
    return assets


def seed_truck(db, truck_id: str, name: str | None = None) -> Truck:
    truck = Truck(TruckID=truck_id, Name=name or truck_id, LicensePlate=f"PL-{truck_id}", Status="Available")
    db.add(truck)
    db.commit()
    return truck


def seed_event(db, event_id: str, start: int, end: int, truck_id: str | None = None, directions=None, name: str | None = None) -> Event:
    event = Event(
        EventID=event_id,
        Name=name or event_id,
        StartDate=day(start),
        EndDate=day(end),
        AssignedTruckID=truck_id,
        Status="Planning",
        QuoteStatus="Draft",
        SelectedScanDirections=None if directions is None else json.dumps(directions),
    )
    db.add(event)
    db.commit()
    return event


def seed_quote_item(db, event_id: str, sku: str, quantity: int) -> QuoteItem:
    quote_item = QuoteItem(EventID=event_id, SKU=sku, Name=f"Item {sku}", Quantity=quantity)
    db.add(quote_item)
    db.commit()
    return quote_item
