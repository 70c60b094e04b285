from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from logiscan.db.base import Base
from logiscan.models.statuses import (
    ASSET_AVAILABLE,
    EVENT_PLANNING,
    QUOTE_DRAFT,
    RESERVATION_PENDING,
    SCAN_LIST_PENDING,
    TASK_PENDING,
    TRUCK_AVAILABLE,
)


class StockItem(Base):
    __tablename__ = "StockItems"

    SKU = Column(String(100), primary_key=True)
    Name = Column(String(255), nullable=False)
    Category = Column(String(100))
    UnitWeight = Column(Numeric(10, 2))
    UnitVolume = Column(Numeric(10, 3))
    UnitPrice = Column(Numeric(10, 2))
    CreatedDate = Column(DateTime, server_default=func.now())

    Assets = relationship("Asset", back_populates="StockItem")


class Asset(Base):
    __tablename__ = "Assets"

    AssetID = Column(String(64), primary_key=True)
    SKU = Column(String(100), ForeignKey("StockItems.SKU"), nullable=False, index=True)
    SerialNumber = Column(String(200))
    Status = Column(String(40), nullable=False, default=ASSET_AVAILABLE)
    CurrentLocationID = Column(String(64))
    NeedsMaintenance = Column(Boolean, default=False)
    Value = Column(Numeric(10, 2), default=0)
    CreatedDate = Column(DateTime, server_default=func.now())
    UpdatedDate = Column(DateTime, server_default=func.now())

    StockItem = relationship("StockItem", back_populates="Assets")


class Truck(Base):
    __tablename__ = "Trucks"

    TruckID = Column(String(64), primary_key=True)
    Name = Column(String(255))
    LicensePlate = Column(String(50), nullable=False)
    Status = Column(String(20), default=TRUCK_AVAILABLE)
    UpdatedDate = Column(DateTime, server_default=func.now())


class Event(Base):
    __tablename__ = "Events"

    EventID = Column(String(64), primary_key=True)
    Name = Column(String(255), nullable=False)
    StartDate = Column(DateTime, nullable=False)
    EndDate = Column(DateTime, nullable=False)
    SetupStartTime = Column(DateTime)
    TeardownEndTime = Column(DateTime)
    AssignedTruckID = Column(String(64), ForeignKey("Trucks.TruckID"))
    Status = Column(String(20), default=EVENT_PLANNING)
    QuoteStatus = Column(String(20), default=QUOTE_DRAFT)
    SelectedScanDirections = Column(String(500))
    CreatedDate = Column(DateTime, server_default=func.now())
    UpdatedDate = Column(DateTime, server_default=func.now())

    QuoteItems = relationship("QuoteItem", back_populates="Event", cascade="all, delete-orphan")


class QuoteItem(Base):
    __tablename__ = "QuoteItems"

    QuoteItemID = Column(Integer, primary_key=True)
    EventID = Column(String(64), ForeignKey("Events.EventID"), nullable=False, index=True)
    SKU = Column(String(100), ForeignKey("StockItems.SKU"), nullable=False)
    Name = Column(String(255))
    Quantity = Column(Integer, nullable=False, default=1)
    AssignedAssets = Column(String)

    Event = relationship("Event", back_populates="QuoteItems")


class AssetReservation(Base):
    __tablename__ = "AssetReservations"
    __table_args__ = (UniqueConstraint("AssetID", "EventID", name="UQ_AssetReservations_Asset_Event"),)

    ReservationID = Column(String(64), primary_key=True)
    AssetID = Column(String(64), ForeignKey("Assets.AssetID"), nullable=False, index=True)
    EventID = Column(String(64), ForeignKey("Events.EventID"), nullable=False, index=True)
    StartDate = Column(DateTime, nullable=False)
    EndDate = Column(DateTime, nullable=False)
    Status = Column(String(20), nullable=False, default=RESERVATION_PENDING)
    CreatedDate = Column(DateTime, server_default=func.now())


class ScanList(Base):
    __tablename__ = "ScanLists"

    ScanListID = Column(String(64), primary_key=True)
    EventID = Column(String(64), ForeignKey("Events.EventID"), nullable=False, index=True)
    Direction = Column(String(20), nullable=False)
    Status = Column(String(20), nullable=False, default=SCAN_LIST_PENDING)
    TotalItems = Column(Integer, default=0)
    ScannedItems = Column(Integer, default=0)
    ScannedAssets = Column(String)
    CreatedDate = Column(DateTime, server_default=func.now())
    CompletedAt = Column(DateTime)


class TaskChain(Base):
    __tablename__ = "TaskChains"

    ChainID = Column(String(64), primary_key=True)
    EventID = Column(String(64), ForeignKey("Events.EventID"), index=True)
    CreatedBy = Column(String(64))
    CreatedDate = Column(DateTime, server_default=func.now())

    Tasks = relationship("TodoTask", back_populates="Chain", order_by="TodoTask.ChainIndex")


class TodoTask(Base):
    __tablename__ = "Tasks"
    __table_args__ = (UniqueConstraint("ChainID", "ChainIndex", name="UQ_Tasks_Chain_Index"),)

    TaskID = Column(String(64), primary_key=True)
    Title = Column(String(255), nullable=False)
    Description = Column(String(1000))
    Type = Column(String(50), default="custom")
    Status = Column(String(20), nullable=False, default=TASK_PENDING)
    EventID = Column(String(64), ForeignKey("Events.EventID"), index=True)
    ScanListID = Column(String(64), ForeignKey("ScanLists.ScanListID"), index=True)
    TruckID = Column(String(64))
    AssignedUserID = Column(String(64))
    CreatedBy = Column(String(64), nullable=False)
    ChainID = Column(String(64), ForeignKey("TaskChains.ChainID"))
    ChainIndex = Column(Integer)
    TriggerNotification = Column(Boolean, default=False)
    Location = Column(String(100))
    CreatedAt = Column(DateTime, server_default=func.now())
    StartedAt = Column(DateTime)
    CompletedAt = Column(DateTime)
    CancelReason = Column(String(500))

    Chain = relationship("TaskChain", back_populates="Tasks")


class TaskNotification(Base):
    __tablename__ = "TaskNotifications"

    NotificationID = Column(Integer, primary_key=True)
    TaskID = Column(String(64), nullable=False, index=True)
    TaskTitle = Column(String(255))
    RecipientUserID = Column(String(64))
    Type = Column(String(30), nullable=False)
    Message = Column(String(1000))
    IsRead = Column(Boolean, default=False)
    CreatedAt = Column(DateTime, server_default=func.now())
    SentAt = Column(DateTime)


class AuditLog(Base):
    __tablename__ = "AuditLogs"

    AuditID = Column(Integer, primary_key=True)
    EntityType = Column(String(50), nullable=False)
    EntityID = Column(String(64), nullable=False)
    Action = Column(String(100), nullable=False)
    Details = Column(String(2000))
    UserID = Column(String(64))
    CreatedAt = Column(DateTime, server_default=func.now())
