import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


class Customer(Base):
    """
    A customer organization - the tenant boundary of the portal.

    Owns its provider groups, providers (NPIs) and users. A Business Associate
    Agreement number is optional but unique when recorded.
    """
    __tablename__ = "customers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    baa_number: Mapped[str | None] = mapped_column(String(100), unique=True, nullable=True)
    baa_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    users = relationship("User", back_populates="customer")
    provider_groups = relationship("ProviderGroup", back_populates="customer", order_by="ProviderGroup.name")
    providers = relationship("Provider", back_populates="customer")
