"""
Acting-user identity and the users collection.

Workflow operations receive the acting user explicitly as a Principal;
there is no ambient "current user". The users collection backs role-based
notification fan-out and resolve_principal().

All functions accept an optional `session` parameter. If provided, the function
uses the caller's session (for transaction atomicity). If None, the function
creates its own session via session_scope().
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..models import User
from ..utils.constants import ALL_ROLES
from . import document_store as store
from .database import session_scope
from .exceptions import DatabaseError, UserNotFound, ValidationError
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)


@dataclass(frozen=True)
class Principal:
    """The user on whose behalf an operation runs.

    Attributes:
        id: Identity provider user id
        display_name: Name stamped on audit fields
        email: Fallback label
        role: Role name
    """

    id: str
    display_name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None

    @property
    def label(self) -> Optional[str]:
        return self.display_name or self.email


def principal_id(principal: Optional[Principal]) -> Optional[str]:
    """The principal's id, or None for system actions."""
    return principal.id if principal is not None else None


def principal_label(principal: Optional[Principal], fallback: str) -> str:
    """display_name, else email, else the fallback role label."""
    if principal is not None and principal.label:
        return principal.label
    return fallback


def _user_to_principal(user: User) -> Principal:
    return Principal(
        id=user.uid,
        display_name=user.display_name,
        email=user.email,
        role=user.role,
    )


# ============================================================================
# Users
# ============================================================================


def create_user(
    uid: str,
    display_name: Optional[str] = None,
    email: Optional[str] = None,
    role: Optional[str] = None,
    session=None,
) -> Dict[str, Any]:
    """
    Register a user.

    Args:
        uid: Identity provider id (unique)
        display_name: Optional display name
        email: Optional email
        role: Optional role; must be one of the known roles when given

    Returns:
        Dict of the created user

    Raises:
        ValidationError: If uid is empty, the role is unknown or uid exists
    """
    errors = []
    if not uid or not str(uid).strip():
        errors.append("uid is required")
    if role is not None and role not in ALL_ROLES:
        errors.append(f"Unknown role '{role}'. Must be one of: {', '.join(ALL_ROLES)}")
    if errors:
        raise ValidationError(errors)

    try:
        if session is not None:
            return _create_user_impl(uid, display_name, email, role, session)
        with session_scope() as session:
            return _create_user_impl(uid, display_name, email, role, session)
    except IntegrityError:
        raise ValidationError([f"User '{uid}' already exists"])
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to create user", e)


def _create_user_impl(uid, display_name, email, role, session) -> Dict[str, Any]:
    if store.get_document(session, "users", uid) is not None:
        raise ValidationError([f"User '{uid}' already exists"])
    user = store.set_document(
        session,
        "users",
        uid,
        {"display_name": display_name, "email": email, "role": role, "status": "active"},
    )
    log_operation(logger, "create_user", "success", uid=uid, role=role)
    return user.to_dict()


def get_user(uid: str, session=None) -> Dict[str, Any]:
    """
    Get a user by uid.

    Raises:
        UserNotFound: If no user has that uid
    """
    if session is not None:
        return _get_user_impl(uid, session)
    with session_scope() as session:
        return _get_user_impl(uid, session)


def _get_user_impl(uid, session) -> Dict[str, Any]:
    user = store.get_document(session, "users", uid)
    if user is None:
        raise UserNotFound(uid)
    return user.to_dict()


def get_users_by_role(role: str, session=None) -> List[Dict[str, Any]]:
    """Active users holding `role`."""
    if session is not None:
        return _get_users_by_role_impl(role, session)
    with session_scope() as session:
        return _get_users_by_role_impl(role, session)


def _get_users_by_role_impl(role, session) -> List[Dict[str, Any]]:
    users = store.list_documents(session, "users", role=role, status="active")
    return [user.to_dict() for user in users]


def resolve_principal(uid: str, session=None) -> Principal:
    """
    Build a Principal for a registered user.

    Raises:
        UserNotFound: If no user has that uid
    """
    if session is not None:
        return _resolve_principal_impl(uid, session)
    with session_scope() as session:
        return _resolve_principal_impl(uid, session)


def _resolve_principal_impl(uid, session) -> Principal:
    user = store.get_document(session, "users", uid)
    if user is None:
        raise UserNotFound(uid)
    return _user_to_principal(user)
