"""SQLAlchemy Account model."""

from datetime import UTC, datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""


class Account(Base):
    """A registered company that owns one or more API keys (tenants).

    Accounts authenticate with email + password and receive a
    short-lived bearer token for dashboard-style reads.
    """

    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_name: Mapped[str] = mapped_column(String(256), nullable=False)
    email: Mapped[str] = mapped_column(String(256), nullable=False, unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(256), nullable=False)
    contact_number: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    tax_identification_number: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    business_pan: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    registered_business_id: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    plan_id: Mapped[int | None] = mapped_column(
        ForeignKey("plans.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )

    def __repr__(self) -> str:
        return f"<Account id={self.id} company={self.company_name!r} email={self.email!r}>"
