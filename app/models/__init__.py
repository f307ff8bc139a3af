"""Models package - exports all SQLAlchemy models."""
# Platform Models
from app.models.app_user import AppUser
from app.models.organization import Organization
from app.models.user_organization import UserOrganization, UserRole, ROLE_HIERARCHY

# Business Models
from app.models.client import Client
from app.models.project import Project
from app.models.cost_code import CostCode
from app.models.estimate import Estimate, EstimateStatus
from app.models.estimate_item import EstimateItem
from app.models.invoice import Invoice, InvoiceStatus
from app.models.invoice_item import InvoiceItem
from app.models.document_sequence import DocumentSequence

# Bookkeeping
from app.models.activity_log import ActivityLog, ActivityAction, EntityType
from app.models.email_log import EmailLog

__all__ = [
    # Platform
    'AppUser', 'Organization', 'UserOrganization', 'UserRole', 'ROLE_HIERARCHY',
    # Business
    'Client', 'Project', 'CostCode',
    'Estimate', 'EstimateStatus', 'EstimateItem',
    'Invoice', 'InvoiceStatus', 'InvoiceItem',
    'DocumentSequence',
    # Bookkeeping
    'ActivityLog', 'ActivityAction', 'EntityType', 'EmailLog',
]
