# coffee_inventory/batch/reconciliation_job.py
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Optional

from coffee_inventory.config import config
from coffee_inventory.core.remaining import (
    calculate_remaining, calculate_sold_by_record, find_oversold, filter_unlinked
)
from coffee_inventory.db import batch_store_scope
from coffee_inventory.db.interface import BatchStore
from coffee_inventory.exceptions import DatabaseError
from coffee_inventory.services.batch_service import BatchService
from coffee_inventory.logging_setup import logger as log_manager, get_logger, log_exception

# Initialize logger
logger = get_logger('reconciliation_job')
logger.setLevel(logging.INFO)

IN_SYNC_MESSAGE = 'Inventory batches are already in sync with actual stock'

RUN_COUNT_KEYS = ('batches_created', 'batches_updated', 'records_processed', 'total_kg_migrated')

@contextmanager
def _store_scope(store: Optional[BatchStore]):
    if store is not None:
        yield store
    else:
        with batch_store_scope() as scoped_store:
            yield scoped_store

def _format_message(total_kg: float, records: int, batches_created: int) -> str:
    return f"Migrated {total_kg:,.0f} kg from {records} records into {batches_created} batch(es)"

def _finish(results: Dict, log_info: Dict, success: bool) -> Dict:
    results['success'] = success
    results['end_time'] = log_manager.batch_end_log(
        log_info,
        success=success,
        result_info=results['message'],
        counts={key: results[key] for key in RUN_COUNT_KEYS}
    )
    results['duration'] = results['end_time'] - results['start_time']
    return results

def _reconcile(batch_store: BatchStore, since: Optional[datetime], activate_last_batch: Optional[bool],
               results: Dict):
    floor_kg = config.batch_rules['remaining_floor_kg']
    service = BatchService(batch_store, activate_last_batch=activate_last_batch)

    # Read phase: nothing is written if any of these fail
    lots = batch_store.fetch_inventory_lots(since)
    deductions = batch_store.fetch_deductions()
    linked_ids = batch_store.fetch_linked_record_ids()

    logger.info(f"Read {len(lots)} inventory records, {len(deductions)} sales deductions, {len(linked_ids)} linked records")

    oversold = find_oversold(lots, calculate_sold_by_record(deductions))
    for record in oversold:
        logger.warning(
            f"Coffee record {record['id']} ({record['coffee_type']}) is over-sold: "
            f"{record['sold_kg']:,.0f} kg sold of {record['original_kg']:,.0f} kg, excluded from batches"
        )
    results['oversold_records'] = oversold

    unlinked = filter_unlinked(calculate_remaining(lots, deductions, floor_kg), linked_ids)

    if unlinked:
        logger.info(f"Allocating {len(unlinked)} unlinked records to batches")
        allocation = service.allocate(unlinked)

        results['batches_created'] = allocation['batches_created']
        results['batches_updated'] = allocation['batches_updated']
        results['records_processed'] = allocation['records_processed']
        results['total_kg_migrated'] = allocation['total_kg_added']
        results['skipped_records'] = allocation['skipped_records']
        results['message'] = _format_message(
            allocation['total_kg_added'],
            allocation['records_processed'],
            allocation['batches_created']
        )
    else:
        results['message'] = IN_SYNC_MESSAGE

    results['total_available_kg'] = service.total_available_kg()

def run_batch_reconciliation(
    since: Optional[datetime] = None,
    activate_last_batch: Optional[bool] = None,
    store: Optional[BatchStore] = None
) -> Dict:
    """Bring inventory batches in line with unsold coffee in the store.

    Reads every inventory lot (or those created at or after since),
    subtracts what has been sold from each, skips lots already linked to
    a batch and allocates the rest to batches. Running it again with no
    new lots changes nothing.

    A database that cannot be reached or read returns a result with
    success False; when that happens before allocation nothing is written.
    A failure updating a batch raises BatchProcessError; rows written
    before it stay committed and the next run picks up the remaining lots.

    Args:
        since: Only consider lots created at or after this time; None for all
        activate_last_batch: Override BATCH_RULES.activate_last_batch
        store: Batch store to use (defaults to the configured database)

    Returns:
        Dictionary with run results
    """
    process_name = 'full batch migration' if since is None else f'batch resync since {since.isoformat()}'
    log_info = log_manager.batch_start_log(process_name, additional_info={
        'since': since.isoformat() if since is not None else None,
        'activate_last_batch': activate_last_batch
    })

    results = {
        'success': False,
        'message': '',
        'batches_created': 0,
        'batches_updated': 0,
        'records_processed': 0,
        'total_kg_migrated': 0.0,
        'total_available_kg': 0.0,
        'oversold_records': [],
        'skipped_records': [],
        'start_time': log_info['start_time'],
        'end_time': None,
        'duration': None
    }

    try:
        with _store_scope(store) as batch_store:
            _reconcile(batch_store, since, activate_last_batch, results)
    except DatabaseError as e:
        log_exception('reconciliation_job', e, "Database error during batch reconciliation")
        results['message'] = e.message
        return _finish(results, log_info, success=False)
    except Exception as e:
        log_exception('reconciliation_job', e, "Batch reconciliation failed")
        results['message'] = str(e)
        _finish(results, log_info, success=False)
        raise

    return _finish(results, log_info, success=True)

def run_full_migration(store: Optional[BatchStore] = None) -> Dict:
    """Allocate every unlinked inventory lot to batches."""
    return run_batch_reconciliation(since=None, store=store)

def run_incremental_resync(since: datetime, store: Optional[BatchStore] = None) -> Dict:
    """Allocate unlinked inventory lots created at or after since."""
    return run_batch_reconciliation(since=since, store=store)

if __name__ == "__main__":
    run_batch_reconciliation()
