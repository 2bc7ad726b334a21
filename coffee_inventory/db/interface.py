# coffee_inventory/db/interface.py
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Dict, Any, Optional, List, Set, Iterable

from postgrest.exceptions import APIError

from coffee_inventory.config import config
from coffee_inventory.exceptions import DatabaseError, DuplicateRecordError, NotFoundError, SourceLinkError
from coffee_inventory.models import (
    CoffeeRecord, SalesInventoryTracking, InventoryBatch, InventoryBatchSource,
    InventoryBatchSale, CoffeeRecordStatus, OPEN_BATCH_STATUSES
)
from coffee_inventory.logging_setup import get_logger
from coffee_inventory.utils.date_utils import to_iso

logger = get_logger('batch_store')

# Postgres error code for unique_violation
UNIQUE_VIOLATION = '23505'

LOT_COLUMNS = 'id, coffee_type, kilograms, supplier_name, date, batch_number, status, created_at'

def escape_like(value: str) -> str:
    """Escape LIKE wildcards so the value only matches itself."""
    return value.replace('\\', '\\\\').replace('%', r'\%').replace('_', r'\_')

class BatchStore(ABC):
    """Reads and writes needed by batch reconciliation.

    Rows are exchanged as plain dictionaries keyed by column name. Every
    write method is durable on return: a run interrupted part way leaves
    the rows written so far in place.
    """

    @abstractmethod
    def fetch_inventory_lots(self, since: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Get inventory lots with positive quantity, oldest first."""
        pass

    @abstractmethod
    def fetch_deductions(self) -> List[Dict[str, Any]]:
        """Get all sale deduction rows."""
        pass

    @abstractmethod
    def fetch_linked_record_ids(self, record_ids: Optional[Iterable[str]] = None) -> Set[str]:
        """Get the IDs of coffee records already linked to a batch."""
        pass

    @abstractmethod
    def find_open_batch(self, coffee_type: str, capacity: float) -> Optional[Dict[str, Any]]:
        """Get the most recent open batch below capacity for a coffee type."""
        pass

    @abstractmethod
    def list_batch_codes(self, prefix: str) -> List[str]:
        """Get the batch codes starting with a prefix."""
        pass

    @abstractmethod
    def create_batch(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a batch. Raises DuplicateRecordError on a code conflict."""
        pass

    @abstractmethod
    def link_lot(self, batch_id: str, source: Dict[str, Any], batch_update: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a batch source and update the batch totals as one unit.

        Raises:
            SourceLinkError: The source row could not be inserted
            DatabaseError: The batch could not be updated; the source row
                is not kept
        """
        pass

    @abstractmethod
    def update_batch(self, batch_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Update a batch and return it."""
        pass

    @abstractmethod
    def list_batches(
        self,
        coffee_type: Optional[str] = None,
        statuses: Optional[List[str]] = None,
        in_stock_only: bool = False
    ) -> List[Dict[str, Any]]:
        """Get batches, oldest batch date first."""
        pass

    @abstractmethod
    def list_sources(self, batch_id: str) -> List[Dict[str, Any]]:
        """Get the sources of a batch, oldest purchase first."""
        pass

    @abstractmethod
    def list_sales(self, batch_id: str) -> List[Dict[str, Any]]:
        """Get the sales drawn from a batch, oldest first."""
        pass

    @abstractmethod
    def record_sale(self, batch_id: str, sale: Dict[str, Any], batch_update: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a batch sale and update the batch as one unit."""
        pass


def _serialize(data: Dict[str, Any]) -> Dict[str, Any]:
    """Make a row JSON-serializable for the REST API."""
    result = {}
    for key, value in data.items():
        if isinstance(value, (date, datetime)):
            value = to_iso(value)
        elif hasattr(value, 'value'):  # Handle enums
            value = value.value
        result[key] = value
    return result


class SupabaseBatchStore(BatchStore):
    """Batch store backed by the Supabase REST API."""

    def __init__(self, client, page_size: Optional[int] = None):
        """Initialize with Supabase client.

        Args:
            client: Supabase client
            page_size: Rows fetched per request when reading whole tables
        """
        self.client = client
        self.page_size = page_size or config.get_int('SUPABASE', 'page_size', 1000)

    def _execute(self, query, action: str):
        try:
            return query.execute()
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise DuplicateRecordError(f"Supabase {action} conflict: {e.message}", code=e.code)
            raise DatabaseError(f"Supabase {action} error: {e.message}", code=e.code)
        except DatabaseError:
            raise
        except Exception as e:
            raise DatabaseError(f"Supabase {action} error: {str(e)}")

    def _select_all(self, build_query, action: str) -> List[Dict[str, Any]]:
        """Read every page of a query.

        Args:
            build_query: Callable returning a fresh query builder
            action: Description used in error messages
        """
        rows = []
        start = 0
        while True:
            query = build_query().range(start, start + self.page_size - 1)
            data = self._execute(query, action).data or []
            rows.extend(data)
            if len(data) < self.page_size:
                return rows
            start += self.page_size

    def fetch_inventory_lots(self, since: Optional[datetime] = None) -> List[Dict[str, Any]]:
        def build():
            query = (
                self.client.table(CoffeeRecord.__tablename__)
                .select(LOT_COLUMNS)
                .eq('status', CoffeeRecordStatus.INVENTORY.value)
                .gt('kilograms', 0)
            )
            if since is not None:
                query = query.gte('created_at', since.isoformat())
            return query.order('date').order('created_at').order('id')

        return self._select_all(build, 'coffee record query')

    def fetch_deductions(self) -> List[Dict[str, Any]]:
        return self._select_all(
            lambda: self.client.table(SalesInventoryTracking.__tablename__).select('id, coffee_record_id, quantity_kg').order('id'),
            'sales tracking query'
        )

    def fetch_linked_record_ids(self, record_ids: Optional[Iterable[str]] = None) -> Set[str]:
        def build():
            query = self.client.table(InventoryBatchSource.__tablename__).select('coffee_record_id')
            if record_ids is not None:
                query = query.in_('coffee_record_id', list(record_ids))
            return query.order('id')

        rows = self._select_all(build, 'batch source query')
        return {row['coffee_record_id'] for row in rows if row.get('coffee_record_id')}

    def find_open_batch(self, coffee_type: str, capacity: float) -> Optional[Dict[str, Any]]:
        query = (
            self.client.table(InventoryBatch.__tablename__)
            .select('*')
            .ilike('coffee_type', escape_like(coffee_type))
            .in_('status', OPEN_BATCH_STATUSES)
            .lt('total_kilograms', capacity)
            .order('batch_date', desc=True)
            .order('created_at', desc=True)
            .limit(1)
        )
        data = self._execute(query, 'open batch query').data
        return data[0] if data else None

    def list_batch_codes(self, prefix: str) -> List[str]:
        rows = self._select_all(
            lambda: (
                self.client.table(InventoryBatch.__tablename__)
                .select('id, batch_code')
                .like('batch_code', f"{escape_like(prefix)}-B%")
                .order('id')
            ),
            'batch code query'
        )
        return [row['batch_code'] for row in rows if row.get('batch_code')]

    def create_batch(self, data: Dict[str, Any]) -> Dict[str, Any]:
        query = self.client.table(InventoryBatch.__tablename__).insert(_serialize(data))
        result = self._execute(query, 'batch insert')
        if not result.data:
            raise DatabaseError("Supabase batch insert returned no row")
        return result.data[0]

    def link_lot(self, batch_id: str, source: Dict[str, Any], batch_update: Dict[str, Any]) -> Dict[str, Any]:
        row = dict(source, batch_id=batch_id)
        try:
            inserted = self._execute(
                self.client.table(InventoryBatchSource.__tablename__).insert(_serialize(row)),
                'batch source insert'
            )
        except DatabaseError as e:
            raise SourceLinkError(e.message, code=e.code, details={'coffee_record_id': source.get('coffee_record_id')})

        try:
            return self.update_batch(batch_id, batch_update)
        except DatabaseError:
            # No transactions over REST: remove the source row again
            if inserted.data:
                logger.warning(f"Removing source for record {source.get('coffee_record_id')} after failed batch update")
                self._execute(
                    self.client.table(InventoryBatchSource.__tablename__).delete().eq('id', inserted.data[0]['id']),
                    'batch source delete'
                )
            raise

    def update_batch(self, batch_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        query = self.client.table(InventoryBatch.__tablename__).update(_serialize(data)).eq('id', batch_id)
        result = self._execute(query, 'batch update')
        if not result.data:
            raise NotFoundError(f"Batch {batch_id} not found for update", details={'batch_id': batch_id})
        return result.data[0]

    def list_batches(
        self,
        coffee_type: Optional[str] = None,
        statuses: Optional[List[str]] = None,
        in_stock_only: bool = False
    ) -> List[Dict[str, Any]]:
        def build():
            query = self.client.table(InventoryBatch.__tablename__).select('*')
            if coffee_type:
                query = query.ilike('coffee_type', escape_like(coffee_type))
            if statuses:
                query = query.in_('status', statuses)
            if in_stock_only:
                query = query.gt('remaining_kilograms', 0)
            return query.order('batch_date').order('created_at').order('id')

        return self._select_all(build, 'batch query')

    def list_sources(self, batch_id: str) -> List[Dict[str, Any]]:
        query = (
            self.client.table(InventoryBatchSource.__tablename__)
            .select('*')
            .eq('batch_id', batch_id)
            .order('purchase_date')
            .order('id')
        )
        return self._execute(query, 'batch source query').data or []

    def list_sales(self, batch_id: str) -> List[Dict[str, Any]]:
        query = (
            self.client.table(InventoryBatchSale.__tablename__)
            .select('*')
            .eq('batch_id', batch_id)
            .order('sale_date')
            .order('id')
        )
        return self._execute(query, 'batch sale query').data or []

    def record_sale(self, batch_id: str, sale: Dict[str, Any], batch_update: Dict[str, Any]) -> Dict[str, Any]:
        row = dict(sale, batch_id=batch_id)
        inserted = self._execute(
            self.client.table(InventoryBatchSale.__tablename__).insert(_serialize(row)),
            'batch sale insert'
        )

        try:
            return self.update_batch(batch_id, batch_update)
        except DatabaseError:
            if inserted.data:
                self._execute(
                    self.client.table(InventoryBatchSale.__tablename__).delete().eq('id', inserted.data[0]['id']),
                    'batch sale delete'
                )
            raise
