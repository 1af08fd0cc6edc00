# Overview: Password hashing, user creation and credential checks.

"""
Authentication Service

WHY: Every sale and ledger entry must be attributable to an operator.
Uses bcrypt for password hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, mixed case, digit and special char
- Session tokens managed separately (see session_service.py)
"""

import bcrypt
import re
from ..extensions import db
from ..models import User
from ..models.auth import ROLES, ROLE_USER
from shopdesk.time_utils import utcnow


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """Returns True if password matches hash, False otherwise (including malformed hashes)."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    email: str,
    password: str,
    full_name: str | None = None,
    role: str = ROLE_USER,
) -> User:
    """
    Create a user with a bcrypt password hash.

    Raises:
        ValueError: unknown role or email already registered
        PasswordValidationError: weak password
    """
    email = (email or "").strip().lower()
    if not email:
        raise ValueError("Email is required")

    if role not in ROLES:
        raise ValueError(f"Unknown role: {role}")

    existing = db.session.query(User).filter_by(email=email).first()
    if existing:
        raise ValueError("Email already registered")

    user = User(
        email=email,
        full_name=full_name,
        password_hash=hash_password(password),
        role=role,
        is_active=True,
    )

    db.session.add(user)
    db.session.commit()

    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Check credentials.

    Returns the user on success, None on unknown email, wrong password or
    deactivated account. Updates last_login_at on success.
    """
    email = (email or "").strip().lower()
    user = db.session.query(User).filter_by(email=email).first()

    if not user or not user.is_active:
        return None

    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()

    return user


def set_role(user_id: int, role: str) -> User:
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role}")

    user = db.session.get(User, user_id)
    if not user:
        raise ValueError("User not found")

    user.role = role
    db.session.commit()
    return user
