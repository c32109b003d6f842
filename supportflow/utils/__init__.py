"""
Utility functions
"""
from supportflow.utils.logger import setup_logger, get_logger
from supportflow.utils.validators import (
    validate_ticket_id,
    sanitize_input
)

__all__ = [
    "setup_logger",
    "get_logger",
    "validate_ticket_id",
    "sanitize_input",
]
