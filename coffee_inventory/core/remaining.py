# coffee_inventory/core/remaining.py
from datetime import date, datetime
from typing import Dict, Iterable, List, Set

from ..models import CoffeeRecordStatus
from ..utils.date_utils import convert_to_date, convert_to_datetime
from ..utils.math_utils import round_kg

DEFAULT_REMAINING_FLOOR_KG = 1.0

def fifo_key(lot: Dict):
    """Sort key putting the oldest lot first: receipt date, then creation time."""
    return (
        convert_to_date(lot.get('date')) or date.min,
        convert_to_datetime(lot.get('created_at')) or datetime.min,
    )

def calculate_sold_by_record(deductions: Iterable[Dict]) -> Dict[str, float]:
    """Sum the sold quantity per coffee record.

    Args:
        deductions: Rows with 'coffee_record_id' and 'quantity_kg'

    Returns:
        Dictionary of coffee record ID to kilograms sold
    """
    sold = {}
    for deduction in deductions:
        record_id = deduction.get('coffee_record_id')
        if not record_id:
            continue
        sold[record_id] = sold.get(record_id, 0.0) + float(deduction.get('quantity_kg') or 0.0)
    return sold

def _is_inventory(lot: Dict) -> bool:
    return lot.get('status', CoffeeRecordStatus.INVENTORY.value) == CoffeeRecordStatus.INVENTORY.value

def calculate_remaining(
    lots: Iterable[Dict],
    deductions: Iterable[Dict],
    floor_kg: float = DEFAULT_REMAINING_FLOOR_KG
) -> List[Dict]:
    """Calculate the unsold quantity of each inventory lot.

    Lots whose remaining quantity is at or below floor_kg are dropped, which
    also drops over-sold lots (see find_oversold).

    Args:
        lots: Coffee record rows
        deductions: Sale deduction rows
        floor_kg: Remaining quantities at or below this are discarded

    Returns:
        Remaining-lot dictionaries in FIFO order
    """
    sold_by_record = calculate_sold_by_record(deductions)

    remaining_lots = []
    for lot in lots:
        if not _is_inventory(lot):
            continue

        original_kg = float(lot.get('kilograms') or 0.0)
        remaining_kg = round_kg(original_kg - sold_by_record.get(lot['id'], 0.0))
        if remaining_kg <= floor_kg:
            continue

        remaining_lots.append({
            'id': lot['id'],
            'coffee_type': lot.get('coffee_type'),
            'original_kg': original_kg,
            'remaining_kg': remaining_kg,
            'supplier_name': lot.get('supplier_name'),
            'date': lot.get('date'),
            'created_at': lot.get('created_at'),
            'batch_number': lot.get('batch_number'),
        })

    return sorted(remaining_lots, key=fifo_key)

def find_oversold(lots: Iterable[Dict], sold_by_record: Dict[str, float]) -> List[Dict]:
    """Find inventory lots whose recorded sales exceed their quantity.

    Returns:
        List of dictionaries with the lot ID, original and sold kilograms
    """
    oversold = []
    for lot in lots:
        if not _is_inventory(lot):
            continue
        original_kg = float(lot.get('kilograms') or 0.0)
        sold_kg = sold_by_record.get(lot['id'], 0.0)
        if round_kg(sold_kg - original_kg) > 0:
            oversold.append({
                'id': lot['id'],
                'coffee_type': lot.get('coffee_type'),
                'original_kg': original_kg,
                'sold_kg': round_kg(sold_kg),
            })
    return oversold

def filter_unlinked(remaining_lots: Iterable[Dict], linked_record_ids: Set[str]) -> List[Dict]:
    """Drop lots that are already linked to a batch."""
    return [lot for lot in remaining_lots if lot['id'] not in linked_record_ids]
