"""
Shared fixtures for the batch reconciliation tests.
"""
from datetime import date, datetime
from unittest.mock import MagicMock

from sqlalchemy.orm import sessionmaker

from coffee_inventory.db.connection import build_engine
from coffee_inventory.models import (
    Base, CoffeeRecord, SalesInventoryTracking, InventoryBatch, CoffeeRecordStatus
)

def make_session():
    """Create a session on a fresh in-memory SQLite database."""
    engine = build_engine('sqlite://')
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False)()

def add_lot(session, coffee_type, kilograms, record_date, supplier_name='Kyagalanyi Estates',
            status=CoffeeRecordStatus.INVENTORY.value, created_at=None):
    """Insert a coffee record and return its ID."""
    record = CoffeeRecord(
        coffee_type=coffee_type,
        kilograms=kilograms,
        supplier_name=supplier_name,
        date=record_date,
        status=status,
        created_at=created_at or datetime(record_date.year, record_date.month, record_date.day, 9, 0)
    )
    session.add(record)
    session.commit()
    return record.id

def add_deduction(session, coffee_record_id, quantity_kg):
    """Insert a sales tracking row against a coffee record."""
    session.add(SalesInventoryTracking(coffee_record_id=coffee_record_id, quantity_kg=quantity_kg))
    session.commit()

def add_batch(session, batch_code, coffee_type, total_kilograms, status='filling',
              remaining_kilograms=None, batch_date=date(2024, 1, 1), target_capacity=5000.0):
    """Insert an inventory batch and return its ID."""
    batch = InventoryBatch(
        batch_code=batch_code,
        coffee_type=coffee_type,
        target_capacity=target_capacity,
        total_kilograms=total_kilograms,
        remaining_kilograms=total_kilograms if remaining_kilograms is None else remaining_kilograms,
        status=status,
        batch_date=batch_date
    )
    session.add(batch)
    session.commit()
    return batch.id

def make_query_builder(*results):
    """Mock a chained Supabase query builder.

    Every builder method returns the builder itself; execute() returns a
    response whose data is taken from results in order.
    """
    builder = MagicMock()
    for method in ('select', 'insert', 'update', 'delete', 'eq', 'neq', 'gt', 'gte', 'lt',
                   'in_', 'ilike', 'like', 'order', 'limit', 'range'):
        getattr(builder, method).return_value = builder

    responses = []
    for result in results:
        if isinstance(result, Exception):
            responses.append(result)
        else:
            response = MagicMock()
            response.data = result
            responses.append(response)
    builder.execute.side_effect = responses
    return builder

def make_supabase_client(builder):
    """Mock a Supabase client whose tables all share one query builder."""
    client = MagicMock()
    client.table.return_value = builder
    return client
