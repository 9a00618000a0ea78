"""Tenant ORM model. Root entity for the multi-tenant hierarchy (no tenant_id)."""

from sqlalchemy import CheckConstraint, String
from sqlalchemy.orm import Mapped, mapped_column

from control_plane.domain.enums import SubscriptionStatus
from control_plane.infrastructure.persistence.database import Base
from control_plane.infrastructure.persistence.models.mixins import (
    CuidMixin,
    TimestampMixin,
)


class Tenant(CuidMixin, TimestampMixin, Base):
    """Tenant. Table: tenant. Subdomain is unique and stored lowercased."""

    __tablename__ = "tenant"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    subdomain: Mapped[str] = mapped_column(
        String(63), unique=True, nullable=False, index=True
    )
    emoji: Mapped[str] = mapped_column(String(10), nullable=False)
    owner_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    subscription_status: Mapped[str] = mapped_column(
        String, nullable=False, default=SubscriptionStatus.TRIAL.value
    )
    subscription_plan: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "subscription_status IN ({})".format(
                ", ".join(
                    "'{}'".format(v.replace("'", "''"))
                    for v in SubscriptionStatus.values()
                )
            ),
            name="tenant_subscription_status_check",
        ),
    )
