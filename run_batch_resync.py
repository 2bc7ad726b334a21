#!/usr/bin/env python
# run_batch_resync.py - Script to allocate store inventory to batches

import sys
import logging
import argparse
from datetime import datetime
from pathlib import Path

# Add the project directory to the path so we can import our modules
project_dir = str(Path(__file__).parent)
if project_dir not in sys.path:
    sys.path.append(project_dir)

from coffee_inventory.batch.reconciliation_job import run_batch_reconciliation
from coffee_inventory.db import initialize
from coffee_inventory.exceptions import InventoryError
from coffee_inventory.logging_setup import get_logger

def parse_since(value):
    """Parse the --since argument as an ISO date or timestamp."""
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid timestamp: {value}")

def main(argv=None):
    """Run the batch reconciliation."""
    parser = argparse.ArgumentParser(description='Allocate coffee inventory to rolling batches')
    parser.add_argument('--since', '-s', type=parse_since,
                        help='Only process coffee records created at or after this ISO timestamp')
    parser.add_argument('--activate-last-batch', action='store_true', default=None,
                        help='Mark the last batch of each coffee type active even below capacity')
    parser.add_argument('--init-db', action='store_true',
                        help='Create missing tables before running (PostgreSQL)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose logging')

    args = parser.parse_args(argv)

    logger = get_logger('batch_resync_runner')
    if args.verbose:
        logger.setLevel(logging.DEBUG)

    logger.info("Starting batch reconciliation...")
    logger.info(f"Records since: {args.since.isoformat() if args.since is not None else 'All records'}")

    try:
        if args.init_db:
            logger.info("Initializing database...")
            initialize()

        results = run_batch_reconciliation(
            since=args.since,
            activate_last_batch=args.activate_last_batch
        )
    except InventoryError as e:
        logger.exception(f"Batch reconciliation failed: {str(e)}")
        return 1

    if not results.get('success', False):
        logger.error(f"Batch reconciliation failed: {results.get('message', 'Unknown error')}")
        return 1

    logger.info(results['message'])
    logger.info(f"Batches created: {results['batches_created']}, batches updated: {results['batches_updated']}")
    logger.info(f"Total available: {results['total_available_kg']:,.0f} kg")
    logger.info(f"Duration: {results.get('duration')}")

    if results['oversold_records']:
        logger.warning(f"Over-sold records excluded: {len(results['oversold_records'])}")

    if results['skipped_records']:
        logger.warning(f"Records skipped after write errors: {', '.join(results['skipped_records'])}")

    return 0

if __name__ == "__main__":
    sys.exit(main())
