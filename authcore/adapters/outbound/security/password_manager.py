# authcore/adapters/outbound/security/password_manager.py

from passlib.context import CryptContext


class PasswordManager:
    """
    bcrypt password hashing for the login credential check.
    """

    crypt_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

    @classmethod
    async def hash_password(cls, password: str) -> str:
        """Return the hash of a plain text password."""
        return cls.crypt_context.hash(password)

    @classmethod
    async def verify_password(cls, plain_password: str, hashed_password: str) -> bool:
        """Verify if the plain text password matches the stored hash."""
        if not plain_password or not hashed_password:
            return False
        try:
            return cls.crypt_context.verify(plain_password, hashed_password)
        except ValueError:
            # Stored value is not a recognizable hash
            return False
