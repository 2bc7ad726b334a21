import logging
import logging.handlers
from pathlib import Path
import traceback
from datetime import datetime

from coffee_inventory.config import config

class Logger:
    """Logging manager for the Coffee Inventory system."""

    _instance = None
    _loggers = {}

    def __new__(cls):
        """Singleton pattern implementation."""
        if cls._instance is None:
            cls._instance = super(Logger, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        """Initialize the logger if not already initialized."""
        if self._initialized:
            return

        self._log_config = config.log_config
        self._log_dir = Path(self._log_config['directory'])

        # Create log directory if it doesn't exist
        if not self._log_dir.exists():
            self._log_dir.mkdir(parents=True)

        self._configure_root_logger()

        self._initialized = True

    def _level(self):
        level_name = self._log_config['level'].upper()
        return getattr(logging, level_name, logging.INFO)

    def _configure_root_logger(self):
        """Configure the root logger."""
        root_logger = logging.getLogger()
        root_logger.setLevel(self._level())

        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

        if self._log_config['console_output']:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(logging.Formatter(self._log_config['format']))
            root_logger.addHandler(console_handler)

    def get_logger(self, name):
        """Get a logger with the specified name.

        Args:
            name: Name of the logger

        Returns:
            Configured logger instance
        """
        if name in self._loggers:
            return self._loggers[name]

        logger = logging.getLogger(name)
        logger.setLevel(self._level())

        # Remove existing handlers to prevent duplicates
        for handler in logger.handlers[:]:
            logger.removeHandler(handler)

        log_file = self._log_dir / f"{name}.log"
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=self._log_config['max_size_mb'] * 1024 * 1024,
            backupCount=self._log_config['backup_count']
        )
        file_handler.setFormatter(logging.Formatter(self._log_config['format']))
        logger.addHandler(file_handler)

        if self._log_config['console_output']:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(logging.Formatter(self._log_config['format']))
            logger.addHandler(console_handler)

        # Prevent propagation to root logger to avoid duplicates
        logger.propagate = False

        self._loggers[name] = logger
        return logger

    def log_exception(self, logger_name, exception, message=None):
        """Log an exception with stack trace.

        Args:
            logger_name: Logger name
            exception: Exception object
            message: Optional message to include
        """
        logger = self.get_logger(logger_name)

        if message:
            logger.error(f"{message}: {str(exception)}")
        else:
            logger.error(str(exception))

        logger.error(traceback.format_exc())

    def batch_start_log(self, process_name, additional_info=None):
        """Log the start of a batch process.

        Args:
            process_name: Name of the batch process
            additional_info: Optional mapping of run options; None values are left out

        Returns:
            Dictionary with batch process logging information
        """
        batch_logger = self.get_logger('batch_runs')
        start_time = datetime.now()

        log_info = {
            'process_name': process_name,
            'start_time': start_time,
            'additional_info': additional_info
        }

        batch_logger.info(f"Starting batch run: {process_name}")
        options = {key: value for key, value in (additional_info or {}).items() if value is not None}
        if options:
            details = ', '.join(f"{key}={value}" for key, value in options.items())
            batch_logger.info(f"Run options: {details}")

        return log_info

    def batch_end_log(self, log_info, success=True, result_info=None, counts=None):
        """Log the end of a batch process.

        Args:
            log_info: Dictionary returned by batch_start_log
            success: Whether the batch process succeeded
            result_info: Optional result information
            counts: Optional mapping of run counters, e.g. batches created

        Returns:
            The end time of the process
        """
        batch_logger = self.get_logger('batch_runs')
        end_time = datetime.now()

        process_name = log_info.get('process_name', 'Unknown')
        start_time = log_info.get('start_time', end_time)
        duration = end_time - start_time

        if success:
            batch_logger.info(f"Completed batch run: {process_name}")
        else:
            batch_logger.error(f"Failed batch run: {process_name}")

        batch_logger.info(f"Run duration: {duration}")

        if result_info:
            batch_logger.info(f"Run result: {result_info}")

        if counts:
            summary = ', '.join(f"{key}={value}" for key, value in counts.items())
            batch_logger.info(f"Run counts: {summary}")

        return end_time

# Global logger instance
logger = Logger()

def get_logger(name):
    """Get a logger with the specified name."""
    return logger.get_logger(name)

def log_exception(logger_name, exception, message=None):
    """Log an exception with stack trace."""
    logger.log_exception(logger_name, exception, message)
