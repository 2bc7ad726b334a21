# coffee_inventory/db/__init__.py
from contextlib import contextmanager

from sqlalchemy import text

from .connection import DatabaseConnection, DatabaseConfig, build_engine, db, session_scope
from .interface import BatchStore, SupabaseBatchStore
from .sql_store import SqlAlchemyBatchStore

from coffee_inventory.exceptions import DatabaseError

def initialize():
    """Initialize database connection and create tables if needed."""
    try:
        if db.db_type == "postgresql":
            from coffee_inventory.models import Base
            with db.session_scope() as session:
                session.execute(text("SELECT 1"))
            Base.metadata.create_all(bind=db.engine)
        else:
            # Supabase tables are created through SQL migrations
            db.get_supabase().table('inventory_batches').select('id').limit(1).execute()

    except DatabaseError:
        raise
    except Exception as e:
        raise DatabaseError(f"Database initialization failed: {str(e)}")

@contextmanager
def batch_store_scope():
    """Provide the batch store for the configured database type."""
    if db.db_type == "supabase":
        yield SupabaseBatchStore(db.get_supabase())
    else:
        with session_scope() as session:
            yield SqlAlchemyBatchStore(session)

__all__ = [
    'db',
    'initialize',
    'session_scope',
    'batch_store_scope',
    'build_engine',
    'BatchStore',
    'SupabaseBatchStore',
    'SqlAlchemyBatchStore',
    'DatabaseConnection',
    'DatabaseConfig'
]
