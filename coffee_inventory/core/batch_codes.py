# coffee_inventory/core/batch_codes.py
import re
from typing import Iterable, Optional

# Matches ARA-B-001 as well as the legacy ARA-B001 form
_BATCH_NUMBER_RE = re.compile(r'-B-?(\d+)$')

def format_batch_code(prefix: str, number: int) -> str:
    """Build a batch code such as ARA-B-001.

    Args:
        prefix: Batch prefix for the coffee type
        number: Sequence number within the prefix

    Returns:
        Batch code
    """
    return f"{prefix}-B-{number:03d}"

def parse_batch_number(batch_code: Optional[str]) -> Optional[int]:
    """Extract the sequence number from a batch code.

    Returns:
        Sequence number, or None if the code has no recognisable number
    """
    match = _BATCH_NUMBER_RE.search(str(batch_code or ''))
    if not match:
        return None
    return int(match.group(1))

def next_batch_number(batch_codes: Iterable[str]) -> int:
    """Get the next free sequence number after the highest existing code."""
    numbers = [n for n in (parse_batch_number(code) for code in batch_codes) if n is not None]
    return max(numbers, default=0) + 1
