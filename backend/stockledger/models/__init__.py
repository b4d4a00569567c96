"""
SQLAlchemy Models for the Stock Ledger
"""
from datetime import datetime
from decimal import Decimal
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, Numeric,
    ForeignKey, Index, CheckConstraint
)
from sqlalchemy.orm import relationship
import enum

from stockledger.core.database import Base


# ==================== ENUMS ====================

class StockStatus(enum.Enum):
    """Lifecycle status shared by items and stock batches"""
    TO_ORDER = "ToOrder"
    ORDERED = "Ordered"
    ARRIVED = "Arrived"
    SOLD = "Sold"


# Statuses whose presence implies USD has been reserved for a batch
CASH_COMMITTING_STATUSES = (StockStatus.ORDERED.value, StockStatus.ARRIVED.value)


# ==================== CORE MODELS ====================

class Company(Base):
    """Organization owning items, locations and cash balances"""
    __tablename__ = 'companies'

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    cash_balance_srd = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    cash_balance_usd = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    users = relationship("User", back_populates="company")
    locations = relationship("Location", back_populates="company")
    items = relationship("Item", back_populates="company")

    __table_args__ = (
        CheckConstraint('cash_balance_srd >= 0', name='ck_companies_cash_srd_non_negative'),
        CheckConstraint('cash_balance_usd >= 0', name='ck_companies_cash_usd_non_negative'),
    )

    __mapper_args__ = {"version_id_col": version}


class User(Base):
    """User account; credentials live with the authentication service"""
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True)
    username = Column(String(100), nullable=False, unique=True)
    email = Column(String(255), nullable=True)
    full_name = Column(String(255), nullable=True)
    is_superuser = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
    company_id = Column(Integer, ForeignKey('companies.id', ondelete='RESTRICT'), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    company = relationship("Company", back_populates="users")

    __table_args__ = (
        Index('ix_users_company_id', 'company_id'),
    )


class Location(Base):
    """Physical place where stock is kept"""
    __tablename__ = 'locations'

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    company_id = Column(Integer, ForeignKey('companies.id', ondelete='RESTRICT'), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    company = relationship("Company", back_populates="locations")
    items = relationship("Item", back_populates="location")
    batches = relationship("StockBatch", back_populates="location")

    __table_args__ = (
        Index('ix_locations_company_id', 'company_id'),
    )


# ==================== INVENTORY MODELS ====================

class Item(Base):
    """Inventory item; quantity_in_stock is derived from batches in batch mode"""
    __tablename__ = 'items'

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=StockStatus.TO_ORDER.value)
    use_batch_system = Column(Boolean, nullable=False, default=True)
    quantity_in_stock = Column(Integer, nullable=False, default=0)
    cost_per_unit_usd = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    freight_cost_usd = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    selling_price_srd = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    company_id = Column(Integer, ForeignKey('companies.id', ondelete='RESTRICT'), nullable=False)
    location_id = Column(Integer, ForeignKey('locations.id', ondelete='SET NULL'), nullable=True)
    assigned_user_id = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    company = relationship("Company", back_populates="items")
    location = relationship("Location", back_populates="items")
    assigned_user = relationship("User")
    batches = relationship("StockBatch", back_populates="item", passive_deletes=True)

    __table_args__ = (
        CheckConstraint('quantity_in_stock >= 0', name='ck_items_quantity_non_negative'),
        Index('ix_items_company_id', 'company_id'),
    )

    __mapper_args__ = {"version_id_col": version}


class StockBatch(Base):
    """A purchase lot of an item at one location"""
    __tablename__ = 'stock_batches'

    id = Column(Integer, primary_key=True)
    quantity = Column(Integer, nullable=False, default=0)
    original_quantity = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default=StockStatus.TO_ORDER.value)
    cost_per_unit_usd = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    freight_cost_usd = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))  # Lot total
    committed_cost_usd = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    order_date = Column(DateTime, nullable=True)
    expected_arrival = Column(DateTime, nullable=True)
    arrived_date = Column(DateTime, nullable=True)
    order_number = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    item_id = Column(Integer, ForeignKey('items.id', ondelete='CASCADE'), nullable=False)
    location_id = Column(Integer, ForeignKey('locations.id', ondelete='SET NULL'), nullable=True)
    assigned_user_id = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    item = relationship("Item", back_populates="batches")
    location = relationship("Location", back_populates="batches")
    assigned_user = relationship("User")

    __table_args__ = (
        CheckConstraint('quantity >= 0', name='ck_stock_batches_quantity_non_negative'),
        CheckConstraint('committed_cost_usd >= 0', name='ck_stock_batches_committed_non_negative'),
        Index('ix_stock_batches_item_id', 'item_id'),
        Index('ix_stock_batches_item_status', 'item_id', 'status'),
        Index('ix_stock_batches_location_id', 'location_id'),
    )

    __mapper_args__ = {"version_id_col": version}


# ==================== AUDIT LOG ====================

class AuditLog(Base):
    """Audit trail for ledger mutations"""
    __tablename__ = 'audit_logs'

    id = Column(Integer, primary_key=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Who performed the action
    user_id = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    username = Column(String(100), nullable=True)  # Store username in case user is deleted

    # What action was performed
    action = Column(String(50), nullable=False)  # CREATE, UPDATE, DELETE, TRANSFER, ...
    resource_type = Column(String(100), nullable=False)  # StockBatch, Item, ...
    resource_id = Column(Integer, nullable=True)

    # Where (company context)
    company_id = Column(Integer, ForeignKey('companies.id', ondelete='SET NULL'), nullable=True)

    # Details
    description = Column(Text, nullable=True)
    old_values = Column(Text, nullable=True)  # JSON string of old values
    new_values = Column(Text, nullable=True)  # JSON string of new values

    # Status
    status = Column(String(20), default='success')  # success, failure, error
    error_message = Column(Text, nullable=True)

    # Relationships
    user = relationship("User")
    company = relationship("Company")

    __table_args__ = (
        Index('ix_audit_logs_timestamp', 'timestamp'),
        Index('ix_audit_logs_company_id', 'company_id'),
        Index('ix_audit_logs_resource', 'resource_type', 'resource_id'),
        Index('ix_audit_logs_action', 'action'),
    )


__all__ = [
    'StockStatus', 'CASH_COMMITTING_STATUSES',
    # Core
    'Company', 'User', 'Location',
    # Inventory
    'Item', 'StockBatch',
    # Audit
    'AuditLog',
]
