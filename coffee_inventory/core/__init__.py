from .normalization import normalize_coffee_type, batch_prefix, group_by_coffee_type
from .batch_codes import format_batch_code, parse_batch_number, next_batch_number
from .remaining import (
    calculate_sold_by_record, calculate_remaining, find_oversold,
    filter_unlinked, fifo_key
)

__all__ = [
    'normalize_coffee_type',
    'batch_prefix',
    'group_by_coffee_type',
    'format_batch_code',
    'parse_batch_number',
    'next_batch_number',
    'calculate_sold_by_record',
    'calculate_remaining',
    'find_oversold',
    'filter_unlinked',
    'fifo_key'
]
