# coffee_inventory/db/sql_store.py
from datetime import datetime
from typing import Dict, Any, Optional, List, Set, Iterable

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from coffee_inventory.exceptions import DatabaseError, DuplicateRecordError, NotFoundError, SourceLinkError
from coffee_inventory.models import (
    Base, CoffeeRecord, SalesInventoryTracking, InventoryBatch, InventoryBatchSource,
    InventoryBatchSale, CoffeeRecordStatus, OPEN_BATCH_STATUSES
)
from coffee_inventory.db.interface import BatchStore, escape_like

def _model_to_dict(instance: Base) -> Dict[str, Any]:
    """Convert model instance to dictionary."""
    result = {}
    for column in instance.__table__.columns:
        value = getattr(instance, column.name)
        if hasattr(value, 'value'):  # Handle enums
            value = value.value
        result[column.name] = value
    return result

class SqlAlchemyBatchStore(BatchStore):
    """Batch store backed by an SQLAlchemy session.

    Each write commits before returning. A failed write rolls back only
    its own unit of work.
    """

    def __init__(self, session: Session):
        """Initialize the store.

        Args:
            session: Database session
        """
        self.session = session

    def _read(self, action: str, query_fn):
        try:
            return query_fn()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise DatabaseError(f"Failed to {action}: {str(e)}")

    def _get_batch(self, batch_id: str) -> InventoryBatch:
        batch = self.session.get(InventoryBatch, batch_id)
        if batch is None:
            raise NotFoundError(f"Batch {batch_id} not found", details={'batch_id': batch_id})
        return batch

    def fetch_inventory_lots(self, since: Optional[datetime] = None) -> List[Dict[str, Any]]:
        def query_fn():
            query = self.session.query(CoffeeRecord).filter(
                CoffeeRecord.status == CoffeeRecordStatus.INVENTORY.value,
                CoffeeRecord.kilograms > 0
            )
            if since is not None:
                query = query.filter(CoffeeRecord.created_at >= since)
            query = query.order_by(CoffeeRecord.date.asc(), CoffeeRecord.created_at.asc(), CoffeeRecord.id.asc())
            return [_model_to_dict(record) for record in query.all()]

        return self._read('fetch coffee records', query_fn)

    def fetch_deductions(self) -> List[Dict[str, Any]]:
        def query_fn():
            rows = self.session.query(
                SalesInventoryTracking.coffee_record_id,
                SalesInventoryTracking.quantity_kg
            ).all()
            return [{'coffee_record_id': row[0], 'quantity_kg': row[1]} for row in rows]

        return self._read('fetch sales tracking', query_fn)

    def fetch_linked_record_ids(self, record_ids: Optional[Iterable[str]] = None) -> Set[str]:
        def query_fn():
            query = self.session.query(InventoryBatchSource.coffee_record_id)
            if record_ids is not None:
                query = query.filter(InventoryBatchSource.coffee_record_id.in_(list(record_ids)))
            return {row[0] for row in query.all() if row[0]}

        return self._read('fetch batch sources', query_fn)

    def find_open_batch(self, coffee_type: str, capacity: float) -> Optional[Dict[str, Any]]:
        def query_fn():
            batch = self.session.query(InventoryBatch).filter(
                func.lower(InventoryBatch.coffee_type) == coffee_type.lower(),
                InventoryBatch.status.in_(OPEN_BATCH_STATUSES),
                InventoryBatch.total_kilograms < capacity
            ).order_by(
                InventoryBatch.batch_date.desc(),
                InventoryBatch.created_at.desc()
            ).first()
            return _model_to_dict(batch) if batch else None

        return self._read('find open batch', query_fn)

    def list_batch_codes(self, prefix: str) -> List[str]:
        def query_fn():
            rows = self.session.query(InventoryBatch.batch_code).filter(
                InventoryBatch.batch_code.like(f"{escape_like(prefix)}-B%", escape='\\')
            ).all()
            return [row[0] for row in rows]

        return self._read('list batch codes', query_fn)

    def create_batch(self, data: Dict[str, Any]) -> Dict[str, Any]:
        batch = InventoryBatch(**data)
        try:
            self.session.add(batch)
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise DuplicateRecordError(f"Batch code {data.get('batch_code')} already exists", details=str(e.orig))
        except SQLAlchemyError as e:
            self.session.rollback()
            raise DatabaseError(f"Failed to create batch: {str(e)}")
        return _model_to_dict(batch)

    def link_lot(self, batch_id: str, source: Dict[str, Any], batch_update: Dict[str, Any]) -> Dict[str, Any]:
        try:
            self.session.add(InventoryBatchSource(batch_id=batch_id, **source))
            self.session.flush()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise SourceLinkError(
                f"Failed to add source for record {source.get('coffee_record_id')}: {str(e)}",
                details={'coffee_record_id': source.get('coffee_record_id')}
            )

        try:
            batch = self._get_batch(batch_id)
            for key, value in batch_update.items():
                setattr(batch, key, value)
            self.session.commit()
        except NotFoundError:
            self.session.rollback()
            raise
        except (SQLAlchemyError, DatabaseError) as e:
            # Rolls back the source row together with the update
            self.session.rollback()
            raise DatabaseError(f"Failed to update batch {batch_id}: {str(e)}")

        return _model_to_dict(batch)

    def update_batch(self, batch_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            batch = self._get_batch(batch_id)
            for key, value in data.items():
                setattr(batch, key, value)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise DatabaseError(f"Failed to update batch {batch_id}: {str(e)}")
        return _model_to_dict(batch)

    def list_batches(
        self,
        coffee_type: Optional[str] = None,
        statuses: Optional[List[str]] = None,
        in_stock_only: bool = False
    ) -> List[Dict[str, Any]]:
        def query_fn():
            query = self.session.query(InventoryBatch)
            if coffee_type:
                query = query.filter(func.lower(InventoryBatch.coffee_type) == coffee_type.lower())
            if statuses:
                query = query.filter(InventoryBatch.status.in_(statuses))
            if in_stock_only:
                query = query.filter(InventoryBatch.remaining_kilograms > 0)
            query = query.order_by(InventoryBatch.batch_date.asc(), InventoryBatch.created_at.asc())
            return [_model_to_dict(batch) for batch in query.all()]

        return self._read('list batches', query_fn)

    def list_sources(self, batch_id: str) -> List[Dict[str, Any]]:
        def query_fn():
            sources = self.session.query(InventoryBatchSource).filter(
                InventoryBatchSource.batch_id == batch_id
            ).order_by(InventoryBatchSource.purchase_date.asc()).all()
            return [_model_to_dict(source) for source in sources]

        return self._read('list batch sources', query_fn)

    def list_sales(self, batch_id: str) -> List[Dict[str, Any]]:
        def query_fn():
            sales = self.session.query(InventoryBatchSale).filter(
                InventoryBatchSale.batch_id == batch_id
            ).order_by(InventoryBatchSale.sale_date.asc()).all()
            return [_model_to_dict(sale) for sale in sales]

        return self._read('list batch sales', query_fn)

    def record_sale(self, batch_id: str, sale: Dict[str, Any], batch_update: Dict[str, Any]) -> Dict[str, Any]:
        try:
            self.session.add(InventoryBatchSale(batch_id=batch_id, **sale))
            batch = self._get_batch(batch_id)
            for key, value in batch_update.items():
                setattr(batch, key, value)
            self.session.commit()
        except (SQLAlchemyError, DatabaseError) as e:
            self.session.rollback()
            raise DatabaseError(f"Failed to record sale on batch {batch_id}: {str(e)}")
        return _model_to_dict(batch)
