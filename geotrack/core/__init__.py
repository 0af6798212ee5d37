"""Shared infrastructure: logging, configuration, paths and asyncio helpers."""

from .asyncio_utils import add_task_exception_logger, cancel_tasks, create_logged_task, drain_tasks
from .config_manager import ConfigManager, get_config_manager
from .logging_config import configure_logging
from .logging_utils import StructuredLogger, get_module_logger

__all__ = [
    'add_task_exception_logger',
    'cancel_tasks',
    'create_logged_task',
    'drain_tasks',
    'ConfigManager',
    'get_config_manager',
    'configure_logging',
    'StructuredLogger',
    'get_module_logger',
]
