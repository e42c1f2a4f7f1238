"""
User roles enumeration.

Roles are asserted by the external auth service inside the access token.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        ADMIN: Operations staff
        SENDER: Creates parcels that need transport
        COURIER: Offers trips along a planned route
    """
    ADMIN = "ADMIN"
    SENDER = "SENDER"
    COURIER = "COURIER"
