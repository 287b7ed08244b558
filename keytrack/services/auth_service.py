# =======================================================================================
# keytrack/services/auth_service.py - Authentication for the frontend
# =======================================================================================

import logging
import secrets
import uuid
from typing import Any, Mapping, Optional

from passlib.context import CryptContext
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from ..config import config
from ..database import DatabaseManager
from ..models.enums import Role
from ..models.schemas import Actor
from ..utils.clock import utcnow
from ..utils.exceptions import AuthenticationFailed, DuplicateUser, UserNotFound

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def _actor(row: Mapping[str, Any]) -> Actor:
    return Actor(user_id=row["id"], name=row["name"], email=row["email"], role=Role(row["role"]))


class AuthService:
    """Handles user registration, login and bearer token lookup."""

    def __init__(self, db: DatabaseManager):
        self.db = db

    def hash_password(self, password: str) -> str:
        return pwd_context.hash(password)

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        return pwd_context.verify(plain_password, hashed_password)

    def register(self, name: str, email: str, password: str, role: Role = Role.FACULTY) -> Actor:
        user_id = uuid.uuid4().hex
        email = email.lower()
        try:
            with self.db.get_connection() as conn:
                existing = conn.execute(
                    text("SELECT id FROM users WHERE email = :email"), {"email": email}
                ).first()
                if existing:
                    raise DuplicateUser()

                conn.execute(
                    text(
                        """
                        INSERT INTO users (id, name, email, role, password_hash, is_active, created_at)
                        VALUES (:id, :name, :email, :role, :password_hash, :is_active, :created_at)
                        """
                    ),
                    {
                        "id": user_id,
                        "name": name,
                        "email": email,
                        "role": role.value,
                        "password_hash": self.hash_password(password),
                        "is_active": True,
                        "created_at": utcnow(),
                    },
                )
        except IntegrityError as exc:
            raise DuplicateUser() from exc

        logger.info("Registered %s user %s", role.value, email)
        return Actor(user_id=user_id, name=name, email=email, role=role)

    def authenticate(self, email: str, password: str) -> Actor:
        row = self.db.fetch_one(
            """
            SELECT id, name, email, role, password_hash, is_active
            FROM users
            WHERE email = :email
            """,
            {"email": email.lower()},
        )

        if not row or not row["is_active"]:
            raise AuthenticationFailed("Invalid email or password")

        if not self.verify_password(password, row["password_hash"]):
            raise AuthenticationFailed("Invalid email or password")

        return _actor(row)

    def issue_token(self, actor: Actor) -> str:
        """Opaque bearer token; valid until the row is removed."""
        token = secrets.token_urlsafe(config.AUTH_TOKEN_BYTES)
        with self.db.get_connection() as conn:
            conn.execute(
                text(
                    """
                    INSERT INTO auth_tokens (token, user_id, created_at)
                    VALUES (:token, :user_id, :created_at)
                    """
                ),
                {"token": token, "user_id": actor.user_id, "created_at": utcnow()},
            )
        return token

    def revoke_token(self, token: str) -> None:
        with self.db.get_connection() as conn:
            conn.execute(text("DELETE FROM auth_tokens WHERE token = :token"), {"token": token})

    def resolve_token(self, token: Optional[str]) -> Actor:
        if not token:
            raise AuthenticationFailed()

        row = self.db.fetch_one(
            """
            SELECT u.id, u.name, u.email, u.role, u.is_active
            FROM auth_tokens t
            JOIN users u ON u.id = t.user_id
            WHERE t.token = :token
            """,
            {"token": token},
        )
        if not row or not row["is_active"]:
            raise AuthenticationFailed("Invalid or expired token")
        return _actor(row)

    def get_user(self, user_id: str) -> Actor:
        row = self.db.fetch_one(
            "SELECT id, name, email, role, is_active FROM users WHERE id = :id",
            {"id": user_id},
        )
        if not row or not row["is_active"]:
            raise UserNotFound()
        return _actor(row)
