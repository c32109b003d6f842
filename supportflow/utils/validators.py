"""
Input validation utilities
"""
from typing import Optional


def validate_ticket_id(ticket_id: Optional[str]) -> bool:
    """
    Validate document ticket ID

    Args:
        ticket_id: Ticket ID to validate

    Returns:
        True if the ID is a non-blank string
    """
    return isinstance(ticket_id, str) and bool(ticket_id.strip())


def sanitize_input(text: str, max_length: int = 10000) -> str:
    """
    Sanitize user input

    Args:
        text: Input text to sanitize
        max_length: Maximum allowed length

    Returns:
        Sanitized text
    """
    # Remove null bytes
    text = text.replace('\x00', '')

    # Truncate to max length
    if len(text) > max_length:
        text = text[:max_length]

    return text.strip()
