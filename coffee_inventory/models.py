# coffee_inventory/models.py
import enum
import uuid
from datetime import datetime

from sqlalchemy import Column, String, Float, Date, DateTime, ForeignKey, Index
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _new_id():
    return str(uuid.uuid4())


class CoffeeRecordStatus(enum.Enum):
    """Status of a received coffee lot.

    Values:
        INVENTORY ('inventory'): Lot is in the store and unsold
        SOLD ('sold'): Lot has been fully drawn down
    """
    INVENTORY = 'inventory'
    SOLD = 'sold'

    def __str__(self):
        return self.value


class BatchStatus(enum.Enum):
    """Lifecycle of an inventory batch.

    Values:
        FILLING ('filling'): Below target capacity, still accepting lots
        ACTIVE ('active'): At or over target capacity
        SELLING ('selling'): Sales have started drawing from the batch
        SOLD_OUT ('sold_out'): Fully depleted
    """
    FILLING = 'filling'
    ACTIVE = 'active'
    SELLING = 'selling'
    SOLD_OUT = 'sold_out'

    def __str__(self):
        return self.value


OPEN_BATCH_STATUSES = [BatchStatus.FILLING.value, BatchStatus.ACTIVE.value]
SELLABLE_BATCH_STATUSES = [
    BatchStatus.FILLING.value,
    BatchStatus.ACTIVE.value,
    BatchStatus.SELLING.value,
]


class CoffeeRecord(Base):
    """Coffee received from a supplier (a lot). Read-only for batching."""
    __tablename__ = 'coffee_records'

    id = Column(String(36), primary_key=True, default=_new_id)
    coffee_type = Column(String(100), nullable=False)
    kilograms = Column(Float, nullable=False, default=0.0)
    supplier_name = Column(String(255))
    date = Column(Date, nullable=False)
    batch_number = Column(String(50))
    status = Column(String(20), nullable=False, default=CoffeeRecordStatus.INVENTORY.value)
    created_at = Column(DateTime, default=datetime.now)

    __table_args__ = (
        Index('ix_coffee_records_status_date', 'status', 'date'),
    )


class SalesInventoryTracking(Base):
    """Quantity a sale drew from a coffee lot."""
    __tablename__ = 'sales_inventory_tracking'

    id = Column(String(36), primary_key=True, default=_new_id)
    coffee_record_id = Column(String(36), ForeignKey('coffee_records.id'))
    quantity_kg = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime, default=datetime.now)


class InventoryBatch(Base):
    __tablename__ = 'inventory_batches'

    id = Column(String(36), primary_key=True, default=_new_id)
    batch_code = Column(String(50), nullable=False, unique=True)
    coffee_type = Column(String(100), nullable=False)
    target_capacity = Column(Float, nullable=False, default=5000.0)
    total_kilograms = Column(Float, nullable=False, default=0.0)
    remaining_kilograms = Column(Float, nullable=False, default=0.0)
    status = Column(String(20), nullable=False, default=BatchStatus.FILLING.value)
    batch_date = Column(Date, nullable=False)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)
    sold_out_at = Column(DateTime)

    sources = relationship("InventoryBatchSource", back_populates="batch")
    sales = relationship("InventoryBatchSale", back_populates="batch")


class InventoryBatchSource(Base):
    """Link from a batch to a contributing coffee lot."""
    __tablename__ = 'inventory_batch_sources'

    id = Column(String(36), primary_key=True, default=_new_id)
    batch_id = Column(String(36), ForeignKey('inventory_batches.id'), nullable=False)
    # A lot is never linked to more than one batch
    coffee_record_id = Column(String(36), ForeignKey('coffee_records.id'), nullable=False, unique=True)
    kilograms = Column(Float, nullable=False)
    supplier_name = Column(String(255))
    purchase_date = Column(Date)
    created_at = Column(DateTime, default=datetime.now)

    batch = relationship("InventoryBatch", back_populates="sources")


class InventoryBatchSale(Base):
    """Quantity a sale deducted from a batch."""
    __tablename__ = 'inventory_batch_sales'

    id = Column(String(36), primary_key=True, default=_new_id)
    batch_id = Column(String(36), ForeignKey('inventory_batches.id'), nullable=False)
    sale_transaction_id = Column(String(36))
    kilograms_deducted = Column(Float, nullable=False)
    customer_name = Column(String(255))
    sale_date = Column(Date, nullable=False)
    created_at = Column(DateTime, default=datetime.now)

    batch = relationship("InventoryBatch", back_populates="sales")
