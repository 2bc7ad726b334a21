import os
import configparser
from pathlib import Path

from coffee_inventory.exceptions import ConfigError

class Config:
    """Configuration manager for the Coffee Inventory system."""

    _instance = None

    def __new__(cls):
        """Singleton pattern implementation."""
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        """Initialize the configuration if not already initialized."""
        if self._initialized:
            return

        env_path = os.getenv('COFFEE_INVENTORY_CONFIG')
        if env_path:
            self._config_path = Path(env_path)
            self._config_dir = self._config_path.parent
        else:
            self._config_dir = Path('config')
            self._config_path = self._config_dir / 'settings.ini'
        self._config = configparser.ConfigParser(interpolation=None)

        # Create config directory if it doesn't exist
        if not self._config_dir.exists():
            self._config_dir.mkdir(parents=True)

        # Load config or create default
        if self._config_path.exists():
            self._config.read(self._config_path)
        else:
            self._create_default_config()

        self._initialized = True

    def _create_default_config(self):
        """Create default configuration file."""
        self._config['DATABASE'] = {
            'type': 'postgresql',
            'engine': 'postgresql',
            'host': 'localhost',
            'port': '5432',
            'database': 'coffee_erp',
            'username': 'postgres',
            'password': 'postgres',
            'pool_size': '5',
            'max_overflow': '10',
            'pool_timeout': '30',
            'pool_recycle': '1800',
            'echo': 'False'
        }

        self._config['SUPABASE'] = {
            'url': '',
            'key': '',
            'page_size': '1000'
        }

        self._config['LOGGING'] = {
            'level': 'INFO',
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            'directory': 'logs',
            'max_size_mb': '10',
            'backup_count': '5',
            'console_output': 'True'
        }

        self._config['BATCH_RULES'] = {
            'target_capacity_kg': '5000',
            'remaining_floor_kg': '1.0',
            'code_retry_attempts': '5',
            'activate_last_batch': 'False'
        }

        self._save_config()

    def _save_config(self):
        """Save configuration to file."""
        with open(self._config_path, 'w') as configfile:
            self._config.write(configfile)

    def get(self, section, key, default=None):
        """Get configuration value."""
        try:
            return self._config.get(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError):
            return default

    def get_int(self, section, key, default=None):
        """Get configuration value as integer."""
        try:
            return self._config.getint(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return default

    def get_float(self, section, key, default=None):
        """Get configuration value as float."""
        try:
            return self._config.getfloat(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return default

    def get_boolean(self, section, key, default=None):
        """Get configuration value as boolean."""
        try:
            return self._config.getboolean(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return default

    @property
    def log_config(self):
        """Get logging configuration."""
        return {
            'level': self.get('LOGGING', 'level', 'INFO'),
            'format': self.get('LOGGING', 'format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s'),
            'directory': self.get('LOGGING', 'directory', 'logs'),
            'max_size_mb': self.get_int('LOGGING', 'max_size_mb', 10),
            'backup_count': self.get_int('LOGGING', 'backup_count', 5),
            'console_output': self.get_boolean('LOGGING', 'console_output', True)
        }

    @property
    def batch_rules(self):
        """Get batch allocation rules.

        Raises:
            ConfigError: If a rule is outside its valid range
        """
        rules = {
            'target_capacity_kg': self.get_float('BATCH_RULES', 'target_capacity_kg', 5000.0),
            'remaining_floor_kg': self.get_float('BATCH_RULES', 'remaining_floor_kg', 1.0),
            'code_retry_attempts': self.get_int('BATCH_RULES', 'code_retry_attempts', 5),
            'activate_last_batch': self.get_boolean('BATCH_RULES', 'activate_last_batch', False)
        }

        if rules['target_capacity_kg'] <= 0:
            raise ConfigError("BATCH_RULES.target_capacity_kg must be positive",
                              details={'target_capacity_kg': rules['target_capacity_kg']})
        if rules['remaining_floor_kg'] < 0:
            raise ConfigError("BATCH_RULES.remaining_floor_kg must not be negative",
                              details={'remaining_floor_kg': rules['remaining_floor_kg']})
        if rules['code_retry_attempts'] < 1:
            raise ConfigError("BATCH_RULES.code_retry_attempts must be at least 1",
                              details={'code_retry_attempts': rules['code_retry_attempts']})

        return rules

# Global config instance
config = Config()
