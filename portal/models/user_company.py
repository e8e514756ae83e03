"""UserCompany model - many-to-many relationship between users and companies with roles."""
import enum
from sqlalchemy import Column, BigInteger, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from portal.database import Base, BigIntPK


class CompanyRole(enum.Enum):
    """User roles within a company."""
    COMPANY_ADMIN = 'COMPANY_ADMIN'
    BUYER = 'BUYER'
    OPERATOR = 'OPERATOR'


class UserCompany(Base):
    """UserCompany model - links users to companies with roles."""

    __tablename__ = 'user_company'
    __table_args__ = (
        UniqueConstraint('user_id', 'company_id', name='uq_user_company'),
    )

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, ForeignKey('app_user.id', ondelete='CASCADE'), nullable=False)
    company_id = Column(BigInteger, ForeignKey('company.id', ondelete='CASCADE'), nullable=False)
    role = Column(String(20), nullable=False, default=CompanyRole.OPERATOR.value)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    user = relationship('AppUser', back_populates='user_companies')
    company = relationship('Company', back_populates='user_companies')

    def __repr__(self):
        return f"<UserCompany(user_id={self.user_id}, company_id={self.company_id}, role='{self.role}')>"

    def is_admin(self):
        """Check if user administers the company."""
        return self.role == CompanyRole.COMPANY_ADMIN.value
