# Overview: Service-layer operations for auth; password hashing, user creation and login.

"""
Authentication Service with Multi-Tenant Support

WHY: Every sale must be attributable to a cashier. Uses bcrypt for password
hashing and validates password strength.

MULTI-TENANT: Users belong to exactly one tenant (tenant_id).
Username/email uniqueness is tenant-scoped.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, mixed case, digit and special char required
- Session tokens managed separately (see session_service.py)
- Authentication refuses users of inactive tenants
"""

import re

import bcrypt

from ..extensions import db
from ..errors import DuplicateKey, TenantAccessError
from ..models import Tenant, User
from ..models.auth import USER_ROLES
from ..validation import EMAIL_RE, ValidationError
from retailpos.time_utils import utcnow


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


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

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>_\-]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str, *, rounds: int = 12) -> str:
    """Validate strength, then hash with bcrypt."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt check. A malformed stored hash never authenticates."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    tenant_id: int,
    username: str,
    email: str,
    password: str,
    *,
    role: str = "cashier",
    name: str | None = None,
    bcrypt_rounds: int = 12,
) -> User:
    """
    Create a user inside a tenant.

    Raises:
        TenantAccessError: tenant missing or inactive
        DuplicateKey: username or email already used in this tenant
        PasswordValidationError / ValidationError: bad password, email or role
    """
    tenant = db.session.query(Tenant).filter_by(id=tenant_id).first()
    if not tenant or not tenant.is_active:
        raise TenantAccessError("Store not found or inactive", {"tenant_id": tenant_id})

    if role not in USER_ROLES:
        raise ValidationError(f"Invalid role: {role}")

    username = (username or "").strip()
    email = (email or "").strip().lower()
    if not username:
        raise ValidationError("username is required")
    if not EMAIL_RE.match(email):
        raise ValidationError("Please enter a valid email")

    existing = db.session.query(User).filter(
        User.tenant_id == tenant_id,
        db.or_(User.username == username, User.email == email),
    ).first()
    if existing:
        field, value = ("username", username) if existing.username == username else ("email", email)
        raise DuplicateKey(field, value)

    user = User(
        tenant_id=tenant_id,
        username=username,
        email=email,
        name=name,
        role=role,
        password_hash=hash_password(password, rounds=bcrypt_rounds),
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str, tenant_code: str | None = None) -> User | None:
    """
    Authenticate by username (or email) and password.

    MULTI-TENANT: tenant_code scopes the lookup. Without it the login only
    succeeds when the username is unambiguous across tenants.

    Returns the User on success (and stamps last_login_at), None otherwise.
    """
    query = db.session.query(User).join(Tenant, Tenant.id == User.tenant_id).filter(
        db.or_(User.username == username, User.email == (username or "").lower()),
        User.is_active.is_(True),
        Tenant.is_active.is_(True),
    )
    if tenant_code is not None:
        query = query.filter(Tenant.code == tenant_code)

    candidates = query.limit(2).all()
    if len(candidates) != 1:
        return None

    user = candidates[0]
    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
