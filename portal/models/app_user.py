"""AppUser model - portal users (buyers, operators, company admins and superadmins)."""
from sqlalchemy import Column, String, Boolean, DateTime, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from werkzeug.security import generate_password_hash, check_password_hash
from portal.database import Base, BigIntPK
from portal.models.company import ApprovalStatus


class AppUser(Base):
    """AppUser model - platform users with local authentication.

    Superadmins are regular users with ``is_superadmin`` set. They usually have
    no company membership and reach company data only through impersonation.
    """

    __tablename__ = 'app_user'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=True)
    full_name = Column(String(200), nullable=True)
    phone = Column(String(50), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    is_superadmin = Column(Boolean, nullable=False, default=False)
    approval_status = Column(Enum(ApprovalStatus, name='user_approval_status'), nullable=False, default=ApprovalStatus.PENDING)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    user_companies = relationship('UserCompany', back_populates='user')

    def set_password(self, password):
        """Set password hash."""
        self.password_hash = generate_password_hash(password, method='scrypt')

    def check_password(self, password):
        """Check password against hash."""
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    @property
    def can_login(self):
        return bool(self.active) and (self.is_superadmin or self.approval_status == ApprovalStatus.APPROVED)

    def __repr__(self):
        return f"<AppUser(id={self.id}, email='{self.email}', superadmin={self.is_superadmin})>"
