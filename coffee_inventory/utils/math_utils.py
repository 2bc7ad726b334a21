# coffee_inventory/utils/math_utils.py
from typing import Iterable, Optional
import numpy as np

# Kilogram values are kept to gram precision
KG_PRECISION = 3

def round_kg(value: float) -> float:
    """Round a kilogram value to gram precision.

    Args:
        value: Kilograms

    Returns:
        Rounded value as a plain float
    """
    return float(np.round(float(value or 0.0), KG_PRECISION))

def sum_kg(values: Iterable[Optional[float]]) -> float:
    """Sum kilogram values, treating missing values as zero.

    Args:
        values: Kilogram values

    Returns:
        Rounded total
    """
    array = np.array([float(v or 0.0) for v in values], dtype=float)
    if array.size == 0:
        return 0.0
    return round_kg(np.sum(array))

def utilization_percent(remaining: float, capacity: float) -> float:
    """Calculate how full a set of batches is.

    Args:
        remaining: Remaining kilograms
        capacity: Total target capacity

    Returns:
        Utilization as a percentage, 0.0 if there is no capacity
    """
    if capacity <= 0:
        return 0.0

    return float(np.round(remaining / capacity * 100.0, 2))
