# authcore/adapters/outbound/persistence/models/__init__.py

"""
ORM models.

Importing this package registers every table on ``Base.metadata``.
"""

from authcore.adapters.outbound.persistence.database import Base
from authcore.adapters.outbound.persistence.models.user_model import UserModel
from authcore.adapters.outbound.persistence.models.session_model import SessionModel

__all__ = [
    "Base",
    "UserModel",
    "SessionModel",
]
