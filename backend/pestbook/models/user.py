"""
Registered accounts (customers and staff) and their roles.

CRM tag columns are denormalized here so that an admin-assigned label
survives lead promotion together with the account it belongs to.
"""

from sqlalchemy import Column, Integer, BigInteger, String, Text, DateTime, ForeignKey, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import relationship

from pestbook.db.base import Base, TimestampMixin, PublicIdMixin

ROLE_CUSTOMER = "customer"
ROLE_WORKER = "worker"
ROLE_ADMIN = "admin"
ROLE_SUPERUSER = "superuser"


class User(Base, TimestampMixin, PublicIdMixin):
    __tablename__ = "users"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    email = Column(String(320), nullable=False)
    password_hash = Column(String(255), nullable=True)

    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    phone = Column(String(30), nullable=True)
    account_type = Column(String(20), nullable=True)
    address = Column(Text, nullable=True)

    crm_tag = Column(String(50), nullable=True)
    crm_tag_note = Column(Text, nullable=True)
    crm_tag_updated_at = Column(DateTime(timezone=True), nullable=True)
    crm_tag_updated_by_user_id = Column(BigInteger().with_variant(Integer, "sqlite"), nullable=True)

    roles = relationship("UserRole", lazy="selectin", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("email", name="uq_users_email"),
        CheckConstraint(
            "account_type IS NULL OR account_type IN ('residential', 'business')",
            name="ck_users_account_type",
        ),
    )

    @property
    def role_names(self) -> list[str]:
        return sorted(r.role for r in self.roles)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"


class UserRole(Base):
    __tablename__ = "user_roles"

    user_id = Column(
        BigInteger().with_variant(Integer, "sqlite"),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    role = Column(String(20), primary_key=True, index=True)

    __table_args__ = (
        CheckConstraint(
            "role IN ('customer', 'worker', 'admin', 'superuser')",
            name="ck_user_roles_role",
        ),
    )

    def __repr__(self) -> str:
        return f"<UserRole(user={self.user_id}, role={self.role})>"
