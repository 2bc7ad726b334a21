# coffee_inventory/db/connection.py
import os
import urllib.parse
from typing import Dict, Any, Literal
from contextlib import contextmanager

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from supabase import create_client, Client

from coffee_inventory.config import config
from coffee_inventory.exceptions import DatabaseError

DatabaseType = Literal["postgresql", "supabase"]

class DatabaseConfig:
    """Configuration for database connections."""

    @staticmethod
    def get_db_type() -> DatabaseType:
        """Get database type from configuration."""
        db_type = config.get('DATABASE', 'type', default='postgresql').lower()
        # Remove any comments from the value
        db_type = db_type.split('#')[0].strip()
        return db_type

    @staticmethod
    def get_postgresql_config() -> Dict[str, Any]:
        """Get PostgreSQL connection configuration."""
        return {
            'url': config.get('DATABASE', 'url', default=''),
            'engine': config.get('DATABASE', 'engine', default='postgresql'),
            'host': config.get('DATABASE', 'host', default='localhost'),
            'port': config.get_int('DATABASE', 'port', default=5432),
            'database': config.get('DATABASE', 'database', default='coffee_erp'),
            'username': config.get('DATABASE', 'username', default='postgres'),
            'password': config.get('DATABASE', 'password', default='postgres'),
            'pool_size': config.get_int('DATABASE', 'pool_size', default=5),
            'max_overflow': config.get_int('DATABASE', 'max_overflow', default=10),
            'pool_timeout': config.get_int('DATABASE', 'pool_timeout', default=30),
            'pool_recycle': config.get_int('DATABASE', 'pool_recycle', default=1800),
            'echo': config.get_boolean('DATABASE', 'echo', default=False)
        }

    @staticmethod
    def get_supabase_config() -> Dict[str, str]:
        """Get Supabase connection configuration."""
        # Try environment variables first
        if os.getenv('SUPABASE_URL') and os.getenv('SUPABASE_KEY'):
            return {
                'url': os.getenv('SUPABASE_URL'),
                'key': os.getenv('SUPABASE_KEY')
            }

        return {
            'url': config.get('SUPABASE', 'url', default=''),
            'key': config.get('SUPABASE', 'key', default='')
        }

    @staticmethod
    def get_connection_string() -> str:
        """Get SQLAlchemy connection string.

        DATABASE.url (or the DATABASE_URL environment variable) wins over
        the individual host settings.
        """
        pg_config = DatabaseConfig.get_postgresql_config()
        url = os.getenv('DATABASE_URL') or pg_config['url']
        if url:
            return url

        password = urllib.parse.quote_plus(pg_config['password'])
        return (
            f"{pg_config['engine']}://{pg_config['username']}:{password}"
            f"@{pg_config['host']}:{pg_config['port']}/{pg_config['database']}"
        )

def build_engine(connection_string: str, echo: bool = False, **pool_options):
    """Create an SQLAlchemy engine for a connection string.

    SQLite URLs get a single shared connection so in-memory databases
    survive across sessions; other URLs get the pool options.
    """
    if connection_string.startswith('sqlite'):
        return create_engine(
            connection_string,
            echo=echo,
            connect_args={'check_same_thread': False},
            poolclass=StaticPool
        )

    return create_engine(connection_string, echo=echo, **pool_options)

class DatabaseConnection:
    """Unified database connection handler for PostgreSQL and Supabase.

    Nothing connects until the connection is first used.
    """

    _instance = None

    def __new__(cls):
        """Ensure singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._db_type = None
            cls._instance._engine = None
            cls._instance._SessionLocal = None
            cls._instance._supabase = None
        return cls._instance

    def _ensure_initialized(self):
        if self._db_type is None:
            self._initialize_connection()

    def _initialize_connection(self):
        """Initialize the database connection based on type."""
        db_type = DatabaseConfig.get_db_type()

        if db_type == "supabase":
            self._initialize_supabase()
        elif db_type == "postgresql":
            self._initialize_postgresql()
        else:
            raise DatabaseError(f"Unknown database type: {db_type}")

        self._db_type = db_type

    def _initialize_postgresql(self):
        """Initialize SQLAlchemy connection."""
        try:
            pg_config = DatabaseConfig.get_postgresql_config()
            connection_string = DatabaseConfig.get_connection_string()

            self._engine = build_engine(
                connection_string,
                echo=pg_config['echo'],
                pool_size=pg_config['pool_size'],
                max_overflow=pg_config['max_overflow'],
                pool_timeout=pg_config['pool_timeout'],
                pool_recycle=pg_config['pool_recycle']
            )

            self._SessionLocal = sessionmaker(
                autocommit=False,
                autoflush=False,
                bind=self._engine
            )

            self._test_postgresql_connection()

        except DatabaseError:
            raise
        except Exception as e:
            raise DatabaseError(f"Failed to initialize PostgreSQL connection: {str(e)}")

    def _initialize_supabase(self):
        """Initialize Supabase connection."""
        try:
            supabase_config = DatabaseConfig.get_supabase_config()

            if not supabase_config['url'] or not supabase_config['key']:
                raise ValueError("Supabase URL and key must be provided")

            self._supabase = create_client(
                supabase_config['url'],
                supabase_config['key']
            )

            self._test_supabase_connection()

        except DatabaseError:
            raise
        except Exception as e:
            raise DatabaseError(f"Failed to initialize Supabase connection: {str(e)}")

    def _test_postgresql_connection(self):
        """Test PostgreSQL connection."""
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            raise DatabaseError(f"PostgreSQL connection test failed: {str(e)}")

    def _test_supabase_connection(self):
        """Test Supabase connection."""
        try:
            self._supabase.table('inventory_batches').select('id').limit(1).execute()
        except Exception as e:
            raise DatabaseError(f"Supabase connection test failed: {str(e)}")

    @contextmanager
    def session_scope(self) -> Session:
        """Provide transaction scope for database operations."""
        self._ensure_initialized()
        if self._db_type != "postgresql":
            raise DatabaseError("session_scope is only available for PostgreSQL connections")

        session = self._SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def get_supabase(self) -> Client:
        """Get Supabase client (Supabase only)."""
        self._ensure_initialized()
        if self._db_type != "supabase":
            raise DatabaseError("get_supabase is only available for Supabase connections")

        return self._supabase

    @property
    def engine(self):
        """Get SQLAlchemy engine (PostgreSQL only)."""
        self._ensure_initialized()
        if self._db_type != "postgresql":
            raise DatabaseError("engine is only available for PostgreSQL connections")

        return self._engine

    @property
    def db_type(self) -> DatabaseType:
        """Get current database type."""
        self._ensure_initialized()
        return self._db_type

# Singleton instance
db = DatabaseConnection()

@contextmanager
def session_scope():
    """Context manager for database sessions."""
    with db.session_scope() as session:
        yield session

