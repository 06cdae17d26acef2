# Overview: Password hashing, authentication and staff account management.

"""
Authentication service.

Passwords are hashed with bcrypt (cost factor from BCRYPT_ROUNDS, 12 by
default). Accounts are created by admins only; there is no
self-registration. Session tokens are handled by session_service.
"""

import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User
from ..models.users import USER_ROLES, ROLE_EMPLOYEE
from ..validation import ValidationError, ConflictError, NotFoundError, PermissionDeniedError, EMAIL_RE
from stockpilot.time_utils import utcnow


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""

    def __init__(self, message: str):
        super().__init__(message, "password")


def validate_password_strength(password: str) -> None:
    """
    Minimum 8 characters with at least one letter and one digit.
    """
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r"[A-Za-z]", password):
        raise PasswordValidationError("Password must contain at least one letter")

    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison; malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_user(*, name: str, email: str, password: str, role: str = ROLE_EMPLOYEE) -> User:
    name = (name or "").strip()
    email = (email or "").strip().lower()

    if not name:
        raise ValidationError("name is required", "name")
    if not EMAIL_RE.match(email):
        raise ValidationError("email is not a valid address", "email")
    if role not in USER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}", "role")

    if db.session.query(User).filter_by(email=email).first():
        raise ConflictError("A user with this email already exists.")

    user = User(name=name, email=email, password_hash=hash_password(password), role=role)
    db.session.add(user)
    db.session.commit()
    current_app.logger.info("Created user %s (%s)", user.email, user.role)
    return user


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.name.asc()).all()


def delete_user(*, user_id: int, actor: User) -> None:
    if not actor.is_admin:
        raise PermissionDeniedError("Only administrators can delete users.")
    if user_id == actor.id:
        raise ConflictError("You cannot delete your own account.")

    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found.")

    db.session.delete(user)
    db.session.commit()
    current_app.logger.info("User %s deleted by %s", user_id, actor.email)


def authenticate(email: str, password: str) -> User | None:
    """
    Returns the active user for the credentials, or None.
    Updates last_login_at on success.
    """
    user = db.session.query(User).filter(
        User.email == (email or "").strip().lower(),
        User.is_active.is_(True),
    ).first()

    if not user or not verify_password(password or "", user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
