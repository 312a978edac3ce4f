"""Contains all models commonly used across different modules."""
from enum import Enum


class UserRole(str, Enum):
    """Enumeration of user roles, lowest privilege first."""
    CUSTOMER = "customer"
    SELLER = "seller"
    ADMIN = "admin"


class EmailType(str, Enum):
    """Enum for different email types."""

    VERIFICATION = "verification"
    PASSWORD_RESET = "password_reset"


class ContentType(str, Enum):
    """Enum for email content types."""

    PLAIN = "plain"
    HTML = "html"
