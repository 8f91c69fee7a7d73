"""
User roles enumeration.

Defines the role types for the market lock booking system.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        ADMIN: Market staff; manages locks and verifies payment slips
        USER: Stall tenant who browses, books and queues for locks (default role)
    """
    ADMIN = "ADMIN"
    USER = "USER"
