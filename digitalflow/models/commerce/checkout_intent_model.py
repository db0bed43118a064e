from __future__ import annotations

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from digitalflow.db.base_class import Base
from digitalflow.utils.time_utils import utcnow


class CheckoutIntentStatus(str, enum.Enum):
    PENDING = "pending"
    AUTOMATION_SENT = "automation_sent"
    CONVERTED = "converted"


class CheckoutIntent(Base):
    """A visitor clicked the checkout button; the sale may or may not follow."""

    __tablename__ = "checkout_intents"
    __table_args__ = (Index("ix_checkout_intents_status_created", "status", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    visitor_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    page_slug: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    page_url: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)
    checkout_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    product_name: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)
    product_price: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=CheckoutIntentStatus.PENDING.value, server_default="pending"
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    converted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<CheckoutIntent(id={self.id}, visitor='{self.visitor_id}', status='{self.status}')>"
