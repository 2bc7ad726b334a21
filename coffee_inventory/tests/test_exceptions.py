"""
Tests for the exception hierarchy.
"""
import unittest

from coffee_inventory.exceptions import (
    InventoryError, DatabaseError, DuplicateRecordError, SourceLinkError,
    InsufficientStockError
)


class TestExceptions(unittest.TestCase):

    def test_defaults_and_code(self):
        self.assertEqual(str(DatabaseError()), "Database error")
        self.assertEqual(str(DatabaseError("boom", code="23505")), "[23505] boom")

    def test_to_dict(self):
        error = InsufficientStockError("Only 10 kg", details={'available_kg': 10})
        self.assertEqual(error.to_dict(), {
            'error': 'InsufficientStockError',
            'message': 'Only 10 kg',
            'details': {'available_kg': 10}
        })

    def test_hierarchy(self):
        self.assertTrue(issubclass(DuplicateRecordError, DatabaseError))
        self.assertTrue(issubclass(SourceLinkError, DatabaseError))
        self.assertTrue(issubclass(DatabaseError, InventoryError))
