"""UserOrganization model - links users to organizations with roles."""
import enum
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class UserRole(enum.Enum):
    """User roles within an organization."""
    OWNER = 'OWNER'
    ADMIN = 'ADMIN'
    STAFF = 'STAFF'


ROLE_HIERARCHY = {'OWNER': 3, 'ADMIN': 2, 'STAFF': 1}


class UserOrganization(Base):
    """UserOrganization model - membership of a user in an organization."""

    __tablename__ = 'user_organization'
    __table_args__ = (UniqueConstraint('user_id', 'organization_id', name='uq_user_organization'),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey('app_user.id'), nullable=False)
    organization_id = Column(Integer, ForeignKey('organization.id'), nullable=False)
    role = Column(String(20), nullable=False, default='STAFF')  # OWNER, ADMIN, STAFF
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    user = relationship('AppUser', back_populates='user_organizations')
    organization = relationship('Organization', back_populates='user_organizations')

    def __repr__(self):
        return f"<UserOrganization(user_id={self.user_id}, organization_id={self.organization_id}, role='{self.role}')>"

    def has_role(self, min_role):
        """Check the membership role against the OWNER > ADMIN > STAFF ladder."""
        return ROLE_HIERARCHY.get(self.role, 0) >= ROLE_HIERARCHY.get(min_role, 1)
