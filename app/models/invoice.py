"""Invoice model."""
import enum
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Date, Text, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
from app.models.estimate import new_document_id


class InvoiceStatus(str, enum.Enum):
    """Invoice status enum."""
    DRAFT = 'draft'
    SENT = 'sent'
    OPENED = 'opened'
    PAID = 'paid'
    OVERDUE = 'overdue'
    SIGNED = 'signed'


class Invoice(Base):
    """Invoice billed to a client, optionally generated from an estimate."""

    __tablename__ = 'invoice'

    id = Column(String(36), primary_key=True, default=new_document_id)
    organization_id = Column(Integer, ForeignKey('organization.id'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('app_user.id'), nullable=True)
    client_id = Column(Integer, ForeignKey('client.id'), nullable=True, index=True)
    project_id = Column(Integer, ForeignKey('project.id'), nullable=True, index=True)
    source_estimate_id = Column(String(36), ForeignKey('estimate.id', ondelete='SET NULL'), nullable=True, index=True)

    invoice_number = Column(String(64), nullable=False)
    status = Column(String(20), nullable=False, default=InvoiceStatus.DRAFT.value, index=True)
    issue_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=True)

    subtotal = Column(Numeric(14, 2), nullable=False, default=0)
    tax_rate = Column(Numeric(6, 3), nullable=False, default=0)
    tax_amount = Column(Numeric(14, 2), nullable=False, default=0)
    amount = Column(Numeric(14, 2), nullable=False, default=0)
    total_paid = Column(Numeric(14, 2), nullable=False, default=0)
    balance_due = Column(Numeric(14, 2), nullable=False, default=0)
    paid_at = Column(DateTime, nullable=True)

    notes = Column(Text, nullable=True)
    terms = Column(Text, nullable=True)

    # Send tracking
    sent_at = Column(DateTime, nullable=True)
    last_sent_at = Column(DateTime, nullable=True)
    send_count = Column(Integer, nullable=False, default=0)
    email_opened_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    organization = relationship('Organization')
    client = relationship('Client')
    project = relationship('Project')
    items = relationship(
        'InvoiceItem',
        back_populates='invoice',
        cascade='all, delete-orphan',
        order_by='InvoiceItem.display_order',
    )

    def __repr__(self):
        return f"<Invoice(id={self.id}, number='{self.invoice_number}', status='{self.status}', amount={self.amount})>"
