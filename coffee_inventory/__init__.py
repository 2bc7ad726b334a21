from .config import config
from .db import db, session_scope, batch_store_scope
from .logging_setup import logger, get_logger
from .exceptions import (
    InventoryError, DatabaseError, BatchProcessError, ValidationError,
    InsufficientStockError
)

__all__ = [
    'config',
    'db',
    'session_scope',
    'batch_store_scope',
    'logger',
    'get_logger',
    'InventoryError',
    'DatabaseError',
    'BatchProcessError',
    'ValidationError',
    'InsufficientStockError'
]
