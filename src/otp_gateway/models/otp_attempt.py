"""SQLAlchemy OtpAttempt model — the append-only OTP audit trail."""

from datetime import UTC, datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from otp_gateway.models.account import Base
from otp_gateway.otp.states import Channel, OtpStatus


class OtpAttempt(Base):
    """One generation → delivery → verification record.

    Rows are never deleted.  ``status`` is only changed by the
    lifecycle manager through conditional updates.
    """

    __tablename__ = "otp_attempts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(
        Integer, nullable=False, doc="Kept after the tenant is deleted (audit trail)"
    )
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    recipient: Mapped[str] = mapped_column(String(256), nullable=False)
    channel: Mapped[Channel] = mapped_column(
        Enum(Channel, native_enum=False, length=8, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=Channel.EMAIL,
    )
    code: Mapped[str] = mapped_column(String(16), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[OtpStatus] = mapped_column(
        Enum(OtpStatus, native_enum=False, length=16, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=OtpStatus.PENDING,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_otp_attempts_scope", "tenant_id", "account_id", "recipient"),
        Index("ix_otp_attempts_account_id", "account_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<OtpAttempt id={self.id} tenant={self.tenant_id} "
            f"recipient={self.recipient!r} status={self.status}>"
        )
