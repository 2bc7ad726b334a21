"""
Tests for the batch rule settings.
"""
import unittest
from unittest.mock import patch

from coffee_inventory.config import Config, config
from coffee_inventory.exceptions import ConfigError


class TestBatchRules(unittest.TestCase):

    def test_defaults(self):
        with patch.object(Config, 'get_float', side_effect=lambda section, key, default=None: default), \
                patch.object(Config, 'get_int', side_effect=lambda section, key, default=None: default), \
                patch.object(Config, 'get_boolean', side_effect=lambda section, key, default=None: default):
            rules = config.batch_rules

        self.assertEqual(rules, {
            'target_capacity_kg': 5000.0,
            'remaining_floor_kg': 1.0,
            'code_retry_attempts': 5,
            'activate_last_batch': False
        })

    @patch.object(Config, 'get_float', return_value=0.0)
    def test_non_positive_capacity(self, mock_get_float):
        with self.assertRaises(ConfigError) as ctx:
            config.batch_rules

        self.assertEqual(ctx.exception.details, {'target_capacity_kg': 0.0})

    @patch.object(Config, 'get_int', return_value=0)
    def test_no_code_attempts(self, mock_get_int):
        with self.assertRaises(ConfigError):
            config.batch_rules
