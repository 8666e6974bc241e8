# authcore/domain/models/user_domain_model.py

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class UserRole(str, Enum):
    STUDENT = "STUDENT"
    LANDLORD = "LANDLORD"
    ADMIN = "ADMIN"


@dataclass
class User:
    """Domain model for the parts of a user the session core reads and writes."""
    id: str
    email: str
    role: UserRole
    password: str  # bcrypt hash
    is_email_verified: bool = False
    is_locked: bool = False
    lock_until: Optional[datetime] = None
    login_attempts: int = 0
    username: Optional[str] = None
    name: Optional[str] = None
    created_at: Optional[datetime] = None

    def is_currently_locked(self, now: datetime) -> bool:
        """A lock only counts while ``lock_until`` lies in the future."""
        return bool(self.is_locked and self.lock_until and self.lock_until > now)
