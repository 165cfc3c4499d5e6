"""
User roles enumeration.

Defines the role types carried in identity tokens.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        ADMIN: Privileged staff, may see and manage every parcel and payment
        RIDER: Delivery rider, records tracking events
        USER: Parcel sender (default role)
    """
    ADMIN = "admin"
    RIDER = "rider"
    USER = "user"
