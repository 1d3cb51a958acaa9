"""
Prospective, unregistered customers.

A lead is created (or refreshed) when an administrator books on behalf of
someone without an account. It is deleted exactly once, inside the signup
transaction that promotes it to a User; lead_conversions keeps the record
that the promotion happened.
"""

from sqlalchemy import Column, Integer, BigInteger, String, Text, DateTime, ForeignKey, CheckConstraint, UniqueConstraint

from pestbook.db.base import Base, TimestampMixin, PublicIdMixin, utcnow


class Lead(Base, TimestampMixin, PublicIdMixin):
    __tablename__ = "leads"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    email = Column(String(320), nullable=False)

    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    phone = Column(String(30), nullable=True)
    account_type = Column(String(20), nullable=True)
    address = Column(Text, nullable=True)

    crm_tag = Column(String(50), nullable=True)
    crm_tag_note = Column(Text, nullable=True)
    crm_tag_updated_at = Column(DateTime(timezone=True), nullable=True)
    crm_tag_updated_by_user_id = Column(BigInteger().with_variant(Integer, "sqlite"), nullable=True)

    __table_args__ = (
        UniqueConstraint("email", name="uq_leads_email"),
        CheckConstraint(
            "account_type IS NULL OR account_type IN ('residential', 'business')",
            name="ck_leads_account_type",
        ),
    )

    def __repr__(self) -> str:
        return f"<Lead(id={self.id}, email={self.email})>"


class LeadConversion(Base):
    __tablename__ = "lead_conversions"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    lead_public_id = Column(String(36), nullable=False)
    user_id = Column(
        BigInteger().with_variant(Integer, "sqlite"),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    bookings_moved = Column(Integer, nullable=False, default=0)
    converted_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def __repr__(self) -> str:
        return f"<LeadConversion(lead={self.lead_public_id}, user={self.user_id})>"
