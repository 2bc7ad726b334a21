# coffee_inventory/batch/__init__.py

from .reconciliation_job import (
    run_batch_reconciliation,
    run_full_migration,
    run_incremental_resync
)

__all__ = [
    'run_batch_reconciliation',
    'run_full_migration',
    'run_incremental_resync'
]
