"""
Tests for batch allocation and sales against batches.
"""
import unittest
from datetime import date
from unittest.mock import MagicMock

from coffee_inventory.db.interface import BatchStore
from coffee_inventory.db.sql_store import SqlAlchemyBatchStore
from coffee_inventory.exceptions import (
    BatchProcessError, DatabaseError, DuplicateRecordError, SourceLinkError,
    InsufficientStockError, ValidationError
)
from coffee_inventory.models import InventoryBatch, InventoryBatchSource, InventoryBatchSale
from coffee_inventory.services.batch_service import BatchService
from coffee_inventory.tests.helpers import make_session, add_lot, add_batch


def remaining_lot(lot_id, kilograms, record_date, coffee_type='Robusta'):
    return {
        'id': lot_id,
        'coffee_type': coffee_type,
        'remaining_kg': kilograms,
        'supplier_name': 'Supplier',
        'date': record_date,
        'created_at': None,
    }


class TestBatchAllocation(unittest.TestCase):
    def setUp(self):
        """Set up test fixtures."""
        self.session = make_session()
        self.store = SqlAlchemyBatchStore(self.session)
        self.service = BatchService(self.store, target_capacity=5000, activate_last_batch=False)

    def tearDown(self):
        self.session.close()

    def _allocate_records(self, *specs):
        lots = []
        for coffee_type, kilograms, record_date in specs:
            lot_id = add_lot(self.session, coffee_type, kilograms, record_date)
            lots.append(remaining_lot(lot_id, kilograms, record_date, coffee_type))
        return lots, self.service.allocate(lots)

    def _batches(self):
        return self.session.query(InventoryBatch).order_by(InventoryBatch.batch_code).all()

    def test_single_lot_below_capacity_stays_filling(self):
        _, results = self._allocate_records(('arabica', 4800, date(2024, 3, 1)))

        batches = self._batches()
        self.assertEqual(len(batches), 1)
        self.assertEqual(batches[0].batch_code, 'ARA-B-001')
        self.assertEqual(batches[0].coffee_type, 'Arabica')
        self.assertEqual(batches[0].total_kilograms, 4800)
        self.assertEqual(batches[0].remaining_kilograms, 4800)
        self.assertEqual(batches[0].status, 'filling')
        self.assertEqual(batches[0].batch_date, date(2024, 3, 1))
        self.assertEqual(results['batches_created'], 1)
        self.assertEqual(results['total_kg_added'], 4800)

        sources = self.session.query(InventoryBatchSource).all()
        self.assertEqual(len(sources), 1)
        self.assertEqual(sources[0].kilograms, 4800)

    def test_fifo_allocation_closes_batch_over_capacity(self):
        lots, results = self._allocate_records(
            ('Robusta', 1000, date(2024, 1, 10)),
            ('Robusta', 3000, date(2024, 1, 1)),
            ('Robusta', 2500, date(2024, 1, 5)),
        )
        jan10, jan1, jan5 = (l['id'] for l in lots)

        first, second = self._batches()
        self.assertEqual(first.batch_code, 'ROB-B-001')
        self.assertEqual(first.total_kilograms, 5500)
        self.assertEqual(first.status, 'active')
        self.assertEqual({s.coffee_record_id for s in first.sources}, {jan1, jan5})

        self.assertEqual(second.batch_code, 'ROB-B-002')
        self.assertEqual(second.total_kilograms, 1000)
        self.assertEqual(second.status, 'filling')
        self.assertEqual([s.coffee_record_id for s in second.sources], [jan10])
        self.assertEqual(results['batches_created'], 2)
        self.assertEqual(results['batches_updated'], 2)

    def test_lots_are_never_split(self):
        lots, _ = self._allocate_records(
            ('Robusta', 4900, date(2024, 1, 1)),
            ('Robusta', 4900, date(2024, 1, 2)),
        )
        by_record = {s.coffee_record_id: s.kilograms for s in self.session.query(InventoryBatchSource).all()}
        self.assertEqual(by_record, {l['id']: 4900 for l in lots})

    def test_case_variants_share_one_lineage(self):
        self._allocate_records(
            ('robusta', 1000, date(2024, 1, 1)),
            ('Robusta', 1000, date(2024, 1, 2)),
            ('ROBUSTA', 1000, date(2024, 1, 3)),
        )
        batches = self._batches()
        self.assertEqual(len(batches), 1)
        self.assertEqual(batches[0].coffee_type, 'Robusta')
        self.assertEqual(batches[0].total_kilograms, 3000)

    def test_conservation_per_type(self):
        lots, _ = self._allocate_records(
            ('Arabica', 1234.5, date(2024, 1, 1)),
            ('Arabica', 4000, date(2024, 1, 2)),
            ('Arabica', 2750.25, date(2024, 1, 3)),
            ('Robusta', 800, date(2024, 1, 1)),
        )
        arabica = [b for b in self._batches() if b.coffee_type == 'Arabica']
        self.assertAlmostEqual(sum(b.remaining_kilograms for b in arabica), 1234.5 + 4000 + 2750.25)

    def test_existing_open_batch_is_filled_first(self):
        batch_id = add_batch(self.session, 'ARA-B-001', 'Arabica', 2000)

        _, results = self._allocate_records(('arabica', 1000, date(2024, 2, 1)))

        self.assertEqual(results['batches_created'], 0)
        batch = self.session.get(InventoryBatch, batch_id)
        self.assertEqual(batch.total_kilograms, 3000)
        self.assertEqual(batch.remaining_kilograms, 3000)

    def test_full_batches_are_not_reopened(self):
        add_batch(self.session, 'ARA-B007', 'Arabica', 5000, status='active')

        self._allocate_records(('Arabica', 500, date(2024, 2, 1)))

        codes = [b.batch_code for b in self._batches()]
        self.assertIn('ARA-B-008', codes)

    def test_activate_last_batch(self):
        lots = []
        lot_id = add_lot(self.session, 'Arabica', 4800, date(2024, 3, 1))
        lots.append(remaining_lot(lot_id, 4800, date(2024, 3, 1), 'Arabica'))

        self.service.allocate(lots, activate_last_batch=True)

        self.assertEqual(self._batches()[0].status, 'active')

    def test_already_linked_lot_is_skipped(self):
        lots, _ = self._allocate_records(('Robusta', 1000, date(2024, 1, 1)))

        # A stale snapshot offers the same lot again
        results = self.service.allocate(lots)

        self.assertEqual(results['records_processed'], 0)
        self.assertEqual(results['skipped_records'], [lots[0]['id']])
        self.assertEqual(self._batches()[0].total_kilograms, 1000)
        self.assertEqual(self.session.query(InventoryBatchSource).count(), 1)

    def test_add_record_to_batch(self):
        record_id = add_lot(self.session, 'Arabica', 600, date(2024, 4, 1))
        record = {'id': record_id, 'coffee_type': 'Arabica', 'kilograms': 600,
                  'supplier_name': 'Supplier', 'date': date(2024, 4, 1)}

        self.assertEqual(self.service.add_record_to_batch(record), {'added': True, 'kilograms': 600})
        self.assertEqual(self.service.add_record_to_batch(record), {'added': False, 'kilograms': 0.0})
        self.assertEqual(self._batches()[0].total_kilograms, 600)


class TestAllocationFailures(unittest.TestCase):
    def setUp(self):
        """Set up a mocked store with one open batch."""
        self.store = MagicMock(spec=BatchStore)
        self.batch = {
            'id': 'batch-1', 'batch_code': 'ROB-B-001', 'coffee_type': 'Robusta',
            'total_kilograms': 0.0, 'remaining_kilograms': 0.0, 'status': 'filling'
        }
        self.store.find_open_batch.return_value = self.batch
        self.service = BatchService(self.store, target_capacity=5000, activate_last_batch=False)

    def test_source_failure_skips_lot_and_continues(self):
        updated = dict(self.batch, total_kilograms=700.0, remaining_kilograms=700.0)
        self.store.link_lot.side_effect = [SourceLinkError("constraint violation"), updated]

        results = self.service.allocate([
            remaining_lot('a', 500, date(2024, 1, 1)),
            remaining_lot('b', 700, date(2024, 1, 2)),
        ])

        self.assertEqual(results['skipped_records'], ['a'])
        self.assertEqual(results['records_processed'], 1)
        self.assertEqual(results['total_kg_added'], 700)
        # Totals for b do not include the skipped lot
        _, _, batch_update = self.store.link_lot.call_args_list[1][0]
        self.assertEqual(batch_update['total_kilograms'], 700)

    def test_batch_update_failure_aborts(self):
        self.store.link_lot.side_effect = DatabaseError("update failed")

        with self.assertRaises(BatchProcessError):
            self.service.allocate([remaining_lot('a', 500, date(2024, 1, 1))])

    def test_batch_code_conflict_retries_next_number(self):
        self.store.find_open_batch.return_value = None
        self.store.list_batch_codes.return_value = ['ROB-B-001']
        created = dict(self.batch, batch_code='ROB-B-003')
        self.store.create_batch.side_effect = [DuplicateRecordError("taken"), created]
        self.store.link_lot.return_value = dict(created, total_kilograms=500.0, remaining_kilograms=500.0)

        results = self.service.allocate([remaining_lot('a', 500, date(2024, 1, 1))])

        codes = [c[0][0]['batch_code'] for c in self.store.create_batch.call_args_list]
        self.assertEqual(codes, ['ROB-B-002', 'ROB-B-003'])
        self.assertEqual(results['batch_codes'], ['ROB-B-003'])

    def test_batch_code_conflicts_give_up(self):
        self.store.find_open_batch.return_value = None
        self.store.list_batch_codes.return_value = []
        self.store.create_batch.side_effect = DuplicateRecordError("taken")
        service = BatchService(self.store, target_capacity=5000, code_retry_attempts=3)

        with self.assertRaises(BatchProcessError):
            service.allocate([remaining_lot('a', 500, date(2024, 1, 1))])

        self.assertEqual(self.store.create_batch.call_count, 3)

    def test_zero_code_attempts_is_respected(self):
        self.store.find_open_batch.return_value = None
        self.store.list_batch_codes.return_value = []
        service = BatchService(self.store, target_capacity=5000, code_retry_attempts=0)

        self.assertEqual(service.code_retry_attempts, 0)
        with self.assertRaises(BatchProcessError):
            service.create_batch('Robusta', date(2024, 1, 1))

        self.store.create_batch.assert_not_called()


class TestSalesAgainstBatches(unittest.TestCase):
    def setUp(self):
        """Set up two Arabica batches and one Robusta batch."""
        self.session = make_session()
        self.service = BatchService(SqlAlchemyBatchStore(self.session), target_capacity=5000)
        self.older = add_batch(self.session, 'ARA-B-001', 'Arabica', 5000, status='active',
                               batch_date=date(2024, 1, 1))
        self.newer = add_batch(self.session, 'ARA-B-002', 'Arabica', 2000, batch_date=date(2024, 2, 1))
        add_batch(self.session, 'ROB-B-001', 'Robusta', 3000, batch_date=date(2024, 1, 1))

    def tearDown(self):
        self.session.close()

    def test_sale_is_deducted_oldest_batch_first(self):
        result = self.service.process_sale('arabica', 6000, 'Olam', sale_transaction_id='txn-1')

        self.assertEqual(
            [(d['batch_code'], d['kilograms_deducted']) for d in result['deductions']],
            [('ARA-B-001', 5000), ('ARA-B-002', 1000)]
        )

        older = self.session.get(InventoryBatch, self.older)
        newer = self.session.get(InventoryBatch, self.newer)
        self.assertEqual(older.status, 'sold_out')
        self.assertEqual(older.remaining_kilograms, 0)
        self.assertIsNotNone(older.sold_out_at)
        self.assertEqual(newer.status, 'selling')
        self.assertEqual(newer.remaining_kilograms, 1000)
        self.assertEqual(self.session.query(InventoryBatchSale).count(), 2)

    def test_insufficient_stock(self):
        with self.assertRaises(InsufficientStockError):
            self.service.process_sale('Arabica', 7500, 'Olam')
        self.assertEqual(self.session.query(InventoryBatchSale).count(), 0)

    def test_non_positive_quantity(self):
        with self.assertRaises(ValidationError):
            self.service.process_sale('Arabica', 0, 'Olam')

    def test_summary_and_available_stock(self):
        self.service.process_sale('Arabica', 5000, 'Olam')

        summary = self.service.get_summary()
        self.assertEqual(summary['active_batches'], 2)
        self.assertEqual(summary['sold_out_batches'], 1)
        self.assertEqual(summary['total_remaining'], 5000)
        self.assertEqual(summary['total_capacity'], 10000)
        self.assertEqual(summary['utilization_percent'], 50.0)
        self.assertEqual(self.service.total_available_kg(), 5000)

    def test_batches_with_details(self):
        self.service.process_sale('Robusta', 500, 'Olam')

        details = {b['batch_code']: b for b in self.service.get_batches_with_details()}
        self.assertEqual(len(details['ROB-B-001']['sales']), 1)
        self.assertEqual(details['ROB-B-001']['sales'][0]['kilograms_deducted'], 500)
        self.assertEqual(details['ARA-B-001']['sources'], [])
