from .date_utils import convert_to_date, convert_to_datetime, to_iso
from .math_utils import round_kg, sum_kg, utilization_percent

__all__ = [
    'convert_to_date',
    'convert_to_datetime',
    'to_iso',
    'round_kg',
    'sum_kg',
    'utilization_percent'
]
