"""SQLAlchemy Tenant (API key) model."""

from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from otp_gateway.models.account import Base


class Tenant(Base):
    """An API key issued to an account for one integration.

    The tenant owns the email credential OTPs are sent from.  The
    secret is stored encrypted (see ``services.credentials``); the
    sender address and provider tag are stored as-is.
    """

    __tablename__ = "tenants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    key: Mapped[str] = mapped_column(
        String(32), nullable=False, unique=True, doc="32-char hex token used as bearer credential"
    )
    sender_email: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    sender_secret: Mapped[str] = mapped_column(
        String(1024), nullable=False, default="", doc="AES-GCM ciphertext, base64"
    )
    provider: Mapped[str] = mapped_column(String(32), nullable=False, default="gmail")
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    sent_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        Index("ix_tenants_account_id", "account_id"),
    )

    @property
    def has_email_credential(self) -> bool:
        return bool(self.sender_email and self.sender_secret)

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} account={self.account_id} active={self.active}>"
