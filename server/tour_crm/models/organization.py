"""Organization model definition."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


class Organization(Base):
    """Tenant that owns tours, customers and bookings."""

    __tablename__ = "organizations"
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, slug='{self.slug}')>"
