"""PermissionLevel and UserPermission ORM models (explicit grants)."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from control_plane.infrastructure.persistence.database import Base
from control_plane.infrastructure.persistence.models.mixins import CuidMixin, TenantMixin


class PermissionLevelModel(CuidMixin, Base):
    """Permission level catalog. Table: permission_level. Unique name."""

    __tablename__ = "permission_level"

    name: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    level: Mapped[int] = mapped_column(Integer, nullable=False)


class UserPermission(CuidMixin, TenantMixin, Base):
    """Explicit grant of a permission level to a member. Table: user_permission."""

    __tablename__ = "user_permission"

    user_id: Mapped[str] = mapped_column(
        String, ForeignKey("app_user.id", ondelete="CASCADE"), nullable=False
    )
    permission_level_id: Mapped[str] = mapped_column(
        String, ForeignKey("permission_level.id", ondelete="CASCADE"), nullable=False
    )
    granted_by: Mapped[str | None] = mapped_column(String, nullable=True)
    granted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "tenant_id", "permission_level_id", name="uq_user_permission"
        ),
        Index("ix_user_permission_lookup", "tenant_id", "user_id"),
    )
