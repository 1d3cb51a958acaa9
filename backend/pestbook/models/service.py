"""
Service catalog entries (reference data).
"""

from sqlalchemy import Column, Integer, BigInteger, String, Text, Boolean, Index

from pestbook.db.base import Base, TimestampMixin, PublicIdMixin


class Service(Base, TimestampMixin, PublicIdMixin):
    __tablename__ = "services"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    is_active = Column(Boolean, nullable=False, default=True)
    sort_order = Column(Integer, nullable=False, default=0)
    base_price_cents = Column(Integer, nullable=True)
    duration_minutes = Column(Integer, nullable=True)

    __table_args__ = (
        Index("ix_services_active_sort", "is_active", "sort_order", "title"),
    )

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, title={self.title}, active={self.is_active})>"
