# authcore/application/dtos/auth_dto.py

"""
Request and response schemas of the authentication endpoints.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from authcore.domain.models.user_domain_model import User, UserRole


class CamelModel(BaseModel):
    """Serializes to the camelCase field names the web client expects."""
    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)


class LoginRequest(BaseModel):
    email: EmailStr = Field(..., description="Account email")
    password: str = Field(..., min_length=1, description="Plain text password")


class RefreshTokenRequest(BaseModel):
    refresh_token: Optional[str] = Field(None, description="Refresh token issued at login")


class UserOutput(CamelModel):
    id: str
    email: str
    role: UserRole
    username: Optional[str] = None
    name: Optional[str] = None
    is_email_verified: bool = Field(False, alias="isEmailVerified")

    @classmethod
    def from_user(cls, user: User) -> "UserOutput":
        return cls(
            id=user.id,
            email=user.email,
            role=user.role,
            username=user.username,
            name=user.name,
            isEmailVerified=user.is_email_verified,
        )

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True)
