"""AppUser ORM model: local profile mirror of identity-provider users."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from control_plane.infrastructure.persistence.database import Base
from control_plane.infrastructure.persistence.models.mixins import TimestampMixin


class AppUser(TimestampMixin, Base):
    """Profile mirror. Table: app_user. id is the identity provider's user id."""

    __tablename__ = "app_user"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False, index=True)
    full_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(String, nullable=True)
