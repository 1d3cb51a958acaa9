"""
Manual CRM classification (VIP, regular, ...) for a registered customer or a lead.
"""

from sqlalchemy import Column, Integer, BigInteger, String, Text, DateTime, CheckConstraint

from pestbook.db.base import Base, utcnow

KIND_REGISTERED = "registered"
KIND_LEAD = "lead"


class CustomerTag(Base):
    __tablename__ = "customer_tags"

    kind = Column(String(20), primary_key=True)
    entity_id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    tag = Column(String(50), nullable=False)
    note = Column(Text, nullable=True)
    updated_by_user_id = Column(BigInteger().with_variant(Integer, "sqlite"), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("kind IN ('registered', 'lead')", name="ck_customer_tags_kind"),
    )

    def __repr__(self) -> str:
        return f"<CustomerTag(kind={self.kind}, entity={self.entity_id}, tag={self.tag})>"
