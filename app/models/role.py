"""ORM models for roles and the permission catalog."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Table, Text, func
from sqlalchemy.orm import relationship

from app.models.base import Base

role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", String(64), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column(
        "permission_id",
        String(64),
        ForeignKey("permissions.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class Permission(Base):
    """A named capability, grouped by module for display."""

    __tablename__ = "permissions"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    module = Column(String(64), nullable=False, index=True)
    description = Column(Text, nullable=False, default="")


class Role(Base):
    """
    Role with an explicit permission set.

    is_admin grants every permission regardless of the explicit set.
    is_system roles cannot be deleted and their is_admin flag cannot change.
    """

    __tablename__ = "roles"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False, unique=True)
    description = Column(Text, nullable=False, default="")
    is_admin = Column(Boolean, nullable=False, default=False)
    is_system = Column(Boolean, nullable=False, default=False)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    permissions = relationship(
        "Permission",
        secondary=role_permissions,
        lazy="selectin",
        order_by="Permission.id",
    )

    @property
    def permission_names(self) -> list[str]:
        return [p.id for p in self.permissions]
