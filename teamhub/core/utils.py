"""
Shared utility functions for teamhub.

This module contains common utilities used across the codebase.
"""

from __future__ import annotations

import secrets
import string
import uuid
from datetime import datetime, timezone


def generate_id(prefix: str = "") -> str:
    """
    Generate a unique ID with optional prefix.
    
    Args:
        prefix: Optional prefix (e.g., "user", "team", "inv")
        
    Returns:
        A unique ID like "team_a1b2c3d4e5f6"
    """
    uid = str(uuid.uuid4())[:12]
    return f"{prefix}_{uid}" if prefix else uid


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def random_string(length: int) -> str:
    """Random alphanumeric string, used for generated OAuth passwords."""
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


def normalize_email(email: str) -> str:
    return email.strip().lower()


def validate_password(password: str) -> str:
    """Require at least 8 characters with one letter and one digit."""
    if len(password) < 8:
        raise ValueError("password must be at least 8 characters")
    if not any(c.isalpha() for c in password) or not any(c.isdigit() for c in password):
        raise ValueError("password must contain at least 1 letter and 1 number")
    return password
