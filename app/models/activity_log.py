"""
Activity log model - append-only audit trail of actions on business entities.
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
import enum

from app.database import Base
from app.utils.dates import utcnow


class EntityType(str, enum.Enum):
    """Kinds of entities an activity can refer to."""
    INVOICE = 'invoice'
    ESTIMATE = 'estimate'
    CLIENT = 'client'
    PROJECT = 'project'
    PRODUCT = 'product'
    PAYMENT = 'payment'
    EXPENSE = 'expense'
    TEAM_MEMBER = 'team_member'
    SUBCONTRACTOR = 'subcontractor'
    VENDOR = 'vendor'
    WORK_PACK = 'work_pack'
    TEMPLATE = 'template'


class ActivityAction(str, enum.Enum):
    """Enumeration of auditable actions."""
    CREATED = 'created'
    UPDATED = 'updated'
    DELETED = 'deleted'
    SENT = 'sent'
    OPENED = 'opened'
    PAID = 'paid'
    ACCEPTED = 'accepted'
    REJECTED = 'rejected'
    CONVERTED = 'converted'
    ARCHIVED = 'archived'
    RESTORED = 'restored'
    SIGNED = 'signed'
    EXPORTED = 'exported'
    IMPORTED = 'imported'
    ASSIGNED = 'assigned'
    UNASSIGNED = 'unassigned'
    STATUS_CHANGED = 'status_changed'
    MILESTONE_COMPLETED = 'milestone_completed'


class ActivityLog(Base):
    """
    Activity log entry.
    Multi-tenant: filtered by organization_id. Rows are never updated.
    """
    __tablename__ = 'activity_log'

    id = Column(Integer, primary_key=True)
    organization_id = Column(Integer, ForeignKey('organization.id'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('app_user.id'), nullable=True)  # NULL for client/system actions
    entity_type = Column(String(32), nullable=False, index=True)
    entity_id = Column(String(64), nullable=False, index=True)
    action = Column(String(32), nullable=False, index=True)
    description = Column(Text, nullable=False)
    details = Column('metadata', JSON, nullable=True)
    ip_address = Column(String(45))  # IPv4 or IPv6
    user_agent = Column(String(255))
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    # Relationships
    user = relationship('AppUser')

    def __repr__(self):
        return f"<ActivityLog {self.action} {self.entity_type}:{self.entity_id} by user {self.user_id}>"
