import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


class Provider(Base):
    """
    A National Provider Identifier registered to a customer.

    NPIs are unique across the whole system, not just per customer. A provider
    may sit in one of its customer's provider groups; basic users reach it
    through UserNpi assignments.
    """
    __tablename__ = "providers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    npi: Mapped[str] = mapped_column(String(10), unique=True, nullable=False, index=True)
    name: Mapped[str | None] = mapped_column(String(200))
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("customers.id"), nullable=False, index=True
    )
    provider_group_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("provider_groups.id"), nullable=True, index=True
    )
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    customer = relationship("Customer", back_populates="providers")
    provider_group = relationship("ProviderGroup", back_populates="providers")
    assignments = relationship("UserNpi", back_populates="provider")

    @property
    def display_name(self) -> str:
        return f"{self.npi} - {self.name}" if self.name else self.npi
