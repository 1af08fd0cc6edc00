# Overview: Role permission checks, row-ownership checks, and the security event trail.

"""
Permission Checking and Security Event Logging

WHY: Every write may be rejected for authorization reasons, and the caller
must treat that as a normal error path. These checks reproduce the row
rules of the original data store:
- "is this caller an admin" -> role permissions (permissions.py)
- "does this caller own this row" -> require_owner_or_permission

DESIGN PRINCIPLES:
- Fail closed: Deny by default, require explicit permission grant
- Log denials only: Permission grants are not logged
- The operator is always passed in explicitly; nothing here reads
  request globals
"""

from ..extensions import db
from ..models import User, SecurityEvent
from ..permissions import DEFAULT_ROLE_PERMISSIONS
from shopdesk.time_utils import utcnow


class PermissionDeniedError(Exception):
    """Raised when user lacks required permission."""
    pass


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
) -> SecurityEvent:
    """
    Append a security event.

    event_type examples:
    - PERMISSION_DENIED
    - OWNERSHIP_DENIED
    - LOGIN_FAILED
    - LOGOUT
    """
    event = SecurityEvent(
        user_id=user_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        occurred_at=utcnow()
    )

    db.session.add(event)
    db.session.commit()

    return event


def get_user_permissions(user: User) -> frozenset[str]:
    """Permission codes granted by the user's role (empty for inactive users)."""
    if user is None or not user.is_active:
        return frozenset()
    return DEFAULT_ROLE_PERMISSIONS.get(user.role, frozenset())


def user_has_permission(user: User, permission_code: str) -> bool:
    return permission_code in get_user_permissions(user)


def require_permission(
    user: User,
    permission_code: str,
    resource: str | None = None,
    ip_address: str | None = None,
) -> None:
    """
    Require user to have permission, raise PermissionDeniedError if not.

    Usage:
        require_permission(operator, "CREATE_SALE", resource="/api/sales/checkout")
    """
    if user_has_permission(user, permission_code):
        return

    log_security_event(
        user_id=user.id if user else None,
        event_type="PERMISSION_DENIED",
        success=False,
        resource=resource,
        action=permission_code,
        reason=f"Missing permission: {permission_code}",
        ip_address=ip_address,
    )
    raise PermissionDeniedError(f"Permission denied: {permission_code}")


def require_owner_or_permission(
    user: User,
    owner_user_id: int,
    override_permission: str,
    resource: str | None = None,
) -> None:
    """
    Allow the row owner, or anyone holding override_permission.

    Mirrors "users manage their own rows, admins manage all".
    """
    if user is not None and user.id == owner_user_id:
        return
    if user_has_permission(user, override_permission):
        return

    log_security_event(
        user_id=user.id if user else None,
        event_type="OWNERSHIP_DENIED",
        success=False,
        resource=resource,
        action=override_permission,
        reason=f"User does not own this record (owner {owner_user_id})",
    )
    raise PermissionDeniedError("Permission denied: record belongs to another user")
