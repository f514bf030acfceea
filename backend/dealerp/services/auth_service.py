# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

Every ledger entry and sale is attributed to a user. Uses bcrypt for
password hashing and validates password strength.

- Passwords hashed with bcrypt (cost factor BCRYPT_ROUNDS, default 12)
- Minimum 8 characters, upper, lower, digit and special character
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import Role, User, UserRole
from ..time_utils import utcnow
from ..validation import ConflictError, NotFoundError, ValidationError
from .session_service import revoke_all_user_sessions

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>_\-]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Password is validated for strength before hashing."""
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds))
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """bcrypt.checkpw() is timing-safe. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def normalize_email(email: str) -> str:
    email = (email or "").strip().lower()
    if not EMAIL_RE.match(email):
        raise ValidationError("A valid email is required")
    return email


def create_user(
    full_name: str,
    email: str,
    password: str,
    role_name: str | None = None,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        ValidationError: bad name/email or weak password
        ConflictError: email already registered
        NotFoundError: role_name does not exist
    """
    full_name = (full_name or "").strip()
    if not full_name:
        raise ValidationError("full_name is required")
    email = normalize_email(email)

    if db.session.query(User).filter_by(email=email).first():
        raise ConflictError(f"User with email {email} already exists")

    role = None
    if role_name:
        role = db.session.query(Role).filter_by(name=role_name).first()
        if not role:
            raise NotFoundError(f"Role {role_name} not found")

    user = User(full_name=full_name, email=email, password_hash=hash_password(password))
    db.session.add(user)
    db.session.flush()

    if role is not None:
        db.session.add(UserRole(user_id=user.id, role_id=role.id))

    db.session.commit()
    current_app.logger.info("Created user %s (%s)", user.id, user.email)
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Returns User if credentials valid, None otherwise.
    Updates last_login_at on successful authentication.
    """
    user = db.session.query(User).filter(
        User.email == (email or "").strip().lower(),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password or "", user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def assign_role(user_id: int, role_name: str) -> UserRole:
    """Assign role to user. Idempotent."""
    if not db.session.get(User, user_id):
        raise NotFoundError(f"User {user_id} not found")

    role = db.session.query(Role).filter_by(name=role_name).first()
    if not role:
        raise NotFoundError(f"Role {role_name} not found")

    existing = db.session.query(UserRole).filter_by(user_id=user_id, role_id=role.id).first()
    if existing:
        return existing

    user_role = UserRole(user_id=user_id, role_id=role.id)
    db.session.add(user_role)
    db.session.commit()
    return user_role


def set_user_active(user_id: int, is_active: bool) -> User:
    """Deactivation also revokes every open session of the user."""
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError(f"User {user_id} not found")

    user.is_active = bool(is_active)
    db.session.commit()

    if not user.is_active:
        revoke_all_user_sessions(user.id)
    return user


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.id).all()
