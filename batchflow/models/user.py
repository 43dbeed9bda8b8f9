"""
User model for role-based notification fan-out.

Users are keyed by `uid`, the identifier handed out by the identity
provider. Roles are plain strings; nothing here enforces permissions.
"""

from sqlalchemy import Column, String, Index

from .base import BaseModel


class User(BaseModel):
    """
    A person acting in the workflow.

    Attributes:
        uid: Identity provider user id (unique)
        display_name: Name stamped on audit fields
        email: Contact address, used as a fallback label
        role: Role name (e.g. "PackingAreaManager")
        status: "active" or "inactive"
    """

    __tablename__ = "users"

    uid = Column(String(128), nullable=False, unique=True)
    display_name = Column(String(200), nullable=True)
    email = Column(String(200), nullable=True)
    role = Column(String(50), nullable=True)
    status = Column(String(20), nullable=False, default="active")

    __table_args__ = (Index("idx_user_role", "role"),)

    def __repr__(self) -> str:
        return f"User(uid='{self.uid}', role='{self.role}')"
