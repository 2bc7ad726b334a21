# coffee_inventory/core/normalization.py
from typing import Dict, List, Optional

DEFAULT_BATCH_PREFIX = 'BAT'

def normalize_coffee_type(coffee_type: Optional[str]) -> str:
    """Normalize a free-text coffee type to its display form.

    Case variants collapse to one form ("ROBUSTA" -> "Robusta"). Different
    spellings stay different ("Arabica" and "Arabica AA" are two types).

    Args:
        coffee_type: Coffee type as entered

    Returns:
        Lower-cased type with the first letter capitalized
    """
    lowered = (coffee_type or '').strip().lower()
    if not lowered:
        return ''
    return lowered[0].upper() + lowered[1:]

def batch_prefix(coffee_type: Optional[str]) -> str:
    """Get the batch code prefix for a coffee type."""
    text = (coffee_type or '').strip()
    if not text:
        return DEFAULT_BATCH_PREFIX
    return text[:3].upper()

def group_by_coffee_type(lots: List[Dict]) -> Dict[str, List[Dict]]:
    """Group lots by normalized coffee type, keeping their order.

    Args:
        lots: Lot dictionaries with a 'coffee_type' key

    Returns:
        Dictionary of normalized type to lots, in order of first appearance
    """
    grouped = {}
    for lot in lots:
        grouped.setdefault(normalize_coffee_type(lot.get('coffee_type')), []).append(lot)
    return grouped
