"""TenantUser ORM model (membership)."""

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from control_plane.domain.enums import Role
from control_plane.infrastructure.persistence.database import Base
from control_plane.infrastructure.persistence.models.mixins import CuidMixin, TenantMixin


class TenantUser(CuidMixin, TenantMixin, Base):
    """Membership. Table: tenant_user. Unique (tenant_id, user_id).

    joined_at null means the invitation is still pending.
    """

    __tablename__ = "tenant_user"

    user_id: Mapped[str] = mapped_column(
        String, ForeignKey("app_user.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[str] = mapped_column(String, nullable=False)
    invited_by: Mapped[str | None] = mapped_column(String, nullable=True)
    invited_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    joined_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "user_id", name="uq_tenant_user"),
        CheckConstraint(
            "role IN ({})".format(", ".join(f"'{v}'" for v in Role.values())),
            name="tenant_user_role_check",
        ),
        CheckConstraint(
            "invited_at IS NOT NULL OR joined_at IS NOT NULL",
            name="tenant_user_state_check",
        ),
        Index("ix_tenant_user_tenant_role", "tenant_id", "role"),
    )
