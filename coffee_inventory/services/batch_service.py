# coffee_inventory/services/batch_service.py
from datetime import date, datetime
from typing import List, Dict, Optional, Any

from coffee_inventory.config import config
from coffee_inventory.core.batch_codes import format_batch_code, next_batch_number
from coffee_inventory.core.normalization import (
    normalize_coffee_type, batch_prefix, group_by_coffee_type
)
from coffee_inventory.core.remaining import fifo_key
from coffee_inventory.db.interface import BatchStore
from coffee_inventory.exceptions import (
    BatchProcessError, DatabaseError, DuplicateRecordError, SourceLinkError,
    InsufficientStockError, ValidationError
)
from coffee_inventory.models import BatchStatus, SELLABLE_BATCH_STATUSES
from coffee_inventory.utils.date_utils import convert_to_date
from coffee_inventory.utils.math_utils import round_kg, sum_kg, utilization_percent

from coffee_inventory.logging_setup import get_logger

logger = get_logger('batch_service')


class BatchService:
    """Service for allocating coffee lots to inventory batches."""

    def __init__(
        self,
        store: BatchStore,
        target_capacity: Optional[float] = None,
        code_retry_attempts: Optional[int] = None,
        activate_last_batch: Optional[bool] = None
    ):
        """Initialize the batch service.

        Args:
            store: Batch store for the configured database
            target_capacity: Batch capacity in kg (defaults to BATCH_RULES)
            code_retry_attempts: Attempts at a fresh batch code on conflict
            activate_last_batch: Mark the last batch of each type active
                after allocation, even below capacity
        """
        rules = config.batch_rules
        self.store = store
        self.target_capacity = float(target_capacity if target_capacity is not None else rules['target_capacity_kg'])
        self.code_retry_attempts = (
            code_retry_attempts if code_retry_attempts is not None else rules['code_retry_attempts']
        )
        self.activate_last_batch = (
            activate_last_batch if activate_last_batch is not None else rules['activate_last_batch']
        )

    def create_batch(self, coffee_type: str, batch_date: Optional[date] = None) -> Dict[str, Any]:
        """Create an empty batch with the next free code for the coffee type.

        The code is taken from the highest existing code for the prefix. If
        another writer takes it first the next number is tried.

        Args:
            coffee_type: Normalized coffee type
            batch_date: Date of the first lot in the batch

        Returns:
            The new batch row
        """
        prefix = batch_prefix(coffee_type)
        number = next_batch_number(self.store.list_batch_codes(prefix))

        for _ in range(self.code_retry_attempts):
            batch_code = format_batch_code(prefix, number)
            try:
                batch = self.store.create_batch({
                    'batch_code': batch_code,
                    'coffee_type': coffee_type,
                    'target_capacity': self.target_capacity,
                    'total_kilograms': 0.0,
                    'remaining_kilograms': 0.0,
                    'status': BatchStatus.FILLING.value,
                    'batch_date': batch_date or date.today()
                })
            except DuplicateRecordError:
                logger.warning(f"Batch code {batch_code} already taken, trying next number")
                number += 1
                continue

            logger.info(f"Created batch {batch_code} for {coffee_type}")
            return batch

        raise BatchProcessError(
            f"Could not allocate a batch code for {coffee_type} after {self.code_retry_attempts} attempts",
            details={'prefix': prefix}
        )

    def _status_for_total(self, total_kilograms: float) -> str:
        if total_kilograms >= self.target_capacity:
            return BatchStatus.ACTIVE.value
        return BatchStatus.FILLING.value

    def allocate(self, lots: List[Dict], activate_last_batch: Optional[bool] = None) -> Dict:
        """Allocate remaining lot quantities to batches.

        Lots are grouped by normalized coffee type and taken oldest first.
        Each lot goes whole into the current batch; a new batch is opened
        once the current one has reached capacity, so the batch taking the
        last lot may end up over capacity.

        Args:
            lots: Remaining-lot dictionaries (see calculate_remaining)
            activate_last_batch: Override for the instance setting

        Returns:
            Dictionary with allocation results

        Raises:
            BatchProcessError: A batch could not be created or updated
        """
        if activate_last_batch is None:
            activate_last_batch = self.activate_last_batch

        results = {
            'batches_created': 0,
            'batches_updated': 0,
            'records_processed': 0,
            'total_kg_added': 0.0,
            'skipped_records': [],
            'batch_codes': []
        }
        touched_batches = set()

        for coffee_type, type_lots in group_by_coffee_type(lots).items():
            try:
                batch = self.store.find_open_batch(coffee_type, self.target_capacity)
            except DatabaseError as e:
                raise BatchProcessError(f"Failed to find open batch for {coffee_type}: {e.message}")

            for lot in sorted(type_lots, key=fifo_key):
                if batch is None or float(batch['total_kilograms'] or 0.0) >= self.target_capacity:
                    try:
                        batch = self.create_batch(coffee_type, convert_to_date(lot.get('date')))
                    except DatabaseError as e:
                        raise BatchProcessError(f"Failed to create batch for {coffee_type}: {e.message}")
                    results['batches_created'] += 1
                    results['batch_codes'].append(batch['batch_code'])

                kilograms = round_kg(lot['remaining_kg'])
                new_total = round_kg(float(batch['total_kilograms'] or 0.0) + kilograms)
                new_remaining = round_kg(float(batch['remaining_kilograms'] or 0.0) + kilograms)

                source = {
                    'coffee_record_id': lot['id'],
                    'kilograms': kilograms,
                    'supplier_name': lot.get('supplier_name'),
                    'purchase_date': convert_to_date(lot.get('date'))
                }
                batch_update = {
                    'total_kilograms': new_total,
                    'remaining_kilograms': new_remaining,
                    'status': self._status_for_total(new_total)
                }

                try:
                    batch = self.store.link_lot(batch['id'], source, batch_update)
                except SourceLinkError as e:
                    logger.warning(f"Error adding source for record {lot['id']}, skipping: {e.message}")
                    results['skipped_records'].append(lot['id'])
                    continue
                except DatabaseError as e:
                    raise BatchProcessError(
                        f"Failed to update batch {batch['batch_code']}: {e.message}",
                        details={'batch_id': batch['id'], 'coffee_record_id': lot['id']}
                    )

                touched_batches.add(batch['id'])
                results['records_processed'] += 1
                results['total_kg_added'] = round_kg(results['total_kg_added'] + kilograms)

            if (
                activate_last_batch
                and batch is not None
                and float(batch['total_kilograms'] or 0.0) > 0
                and batch['status'] != BatchStatus.ACTIVE.value
            ):
                try:
                    batch = self.store.update_batch(batch['id'], {'status': BatchStatus.ACTIVE.value})
                except DatabaseError as e:
                    raise BatchProcessError(f"Failed to activate batch {batch['batch_code']}: {e.message}")

        results['batches_updated'] = len(touched_batches)
        return results

    def add_record_to_batch(self, record: Dict) -> Dict:
        """Add a newly received coffee record to the open batch for its type.

        Args:
            record: Coffee record row

        Returns:
            Dictionary with 'added' flag and kilograms added
        """
        if self.store.fetch_linked_record_ids([record['id']]):
            logger.info(f"Record {record['id']} is already linked to a batch")
            return {'added': False, 'kilograms': 0.0}

        kilograms = round_kg(record.get('kilograms') or 0.0)
        if kilograms <= 0:
            return {'added': False, 'kilograms': 0.0}

        lot = dict(record, remaining_kg=kilograms)
        results = self.allocate([lot])
        if not results['records_processed']:
            return {'added': False, 'kilograms': 0.0}

        return {'added': True, 'kilograms': kilograms}

    def process_sale(
        self,
        coffee_type: str,
        kilograms: float,
        customer_name: Optional[str] = None,
        sale_transaction_id: Optional[str] = None,
        sale_date: Optional[date] = None
    ) -> Dict:
        """Deduct a sale from batches, oldest batch first.

        Args:
            coffee_type: Coffee type sold (any case)
            kilograms: Quantity sold
            customer_name: Customer name
            sale_transaction_id: Optional sale transaction ID
            sale_date: Date of the sale (defaults to today)

        Returns:
            Dictionary with the deductions made per batch

        Raises:
            ValidationError: Quantity is not positive
            InsufficientStockError: Batches hold less than the quantity
        """
        kilograms = round_kg(kilograms)
        if kilograms <= 0:
            raise ValidationError(f"Sale quantity must be positive, got {kilograms}")

        normalized_type = normalize_coffee_type(coffee_type)
        batches = self.store.list_batches(
            coffee_type=normalized_type,
            statuses=SELLABLE_BATCH_STATUSES,
            in_stock_only=True
        )

        total_available = sum_kg(b['remaining_kilograms'] for b in batches)
        if total_available < kilograms:
            raise InsufficientStockError(
                f"Only {total_available:,.0f} kg of {normalized_type} available, need {kilograms:,.0f} kg",
                details={'available_kg': total_available, 'requested_kg': kilograms}
            )

        sale_date = sale_date or date.today()
        remaining_to_deduct = kilograms
        deductions = []

        for batch in batches:
            if remaining_to_deduct <= 0:
                break

            batch_remaining = float(batch['remaining_kilograms'] or 0.0)
            deducted = round_kg(min(remaining_to_deduct, batch_remaining))
            new_remaining = round_kg(batch_remaining - deducted)
            sold_out = new_remaining <= 0

            self.store.record_sale(
                batch['id'],
                {
                    'sale_transaction_id': sale_transaction_id,
                    'kilograms_deducted': deducted,
                    'customer_name': customer_name,
                    'sale_date': sale_date
                },
                {
                    'remaining_kilograms': max(new_remaining, 0.0),
                    'status': BatchStatus.SOLD_OUT.value if sold_out else BatchStatus.SELLING.value,
                    'sold_out_at': datetime.now() if sold_out else None
                }
            )

            deductions.append({
                'batch_id': batch['id'],
                'batch_code': batch['batch_code'],
                'kilograms_deducted': deducted,
                'sold_out': sold_out
            })
            remaining_to_deduct = round_kg(remaining_to_deduct - deducted)

        logger.info(f"Deducted {kilograms:,.0f} kg of {normalized_type} from {len(deductions)} batch(es)")

        return {
            'success': True,
            'coffee_type': normalized_type,
            'kilograms': kilograms,
            'deductions': deductions
        }

    def total_available_kg(self) -> float:
        """Get the remaining kilograms across batches that are not sold out."""
        batches = self.store.list_batches(statuses=SELLABLE_BATCH_STATUSES)
        return sum_kg(b['remaining_kilograms'] for b in batches)

    def get_summary(self) -> Dict:
        """Get batch counts, stock and capacity utilization.

        Returns:
            Dictionary with summary figures
        """
        batches = self.store.list_batches()
        open_batches = [b for b in batches if b['status'] != BatchStatus.SOLD_OUT.value]
        sold_out_batches = [b for b in batches if b['status'] == BatchStatus.SOLD_OUT.value]

        total_remaining = sum_kg(b['remaining_kilograms'] for b in open_batches)
        total_capacity = sum_kg(b['target_capacity'] for b in open_batches)

        return {
            'active_batches': len(open_batches),
            'sold_out_batches': len(sold_out_batches),
            'total_remaining': total_remaining,
            'total_capacity': total_capacity,
            'utilization_percent': utilization_percent(total_remaining, total_capacity)
        }

    def get_batches_with_details(self) -> List[Dict]:
        """Get every batch with its sources and sales."""
        batches = []
        for batch in self.store.list_batches():
            batches.append(dict(
                batch,
                sources=self.store.list_sources(batch['id']),
                sales=self.store.list_sales(batch['id'])
            ))
        return batches
