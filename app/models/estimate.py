"""Estimate model - priced proposals sent to clients."""
import enum
import uuid
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Date, Text, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
from app.utils.dates import today


class EstimateStatus(str, enum.Enum):
    """Estimate status enum."""
    DRAFT = 'draft'
    SENT = 'sent'
    OPENED = 'opened'
    ACCEPTED = 'accepted'
    REJECTED = 'rejected'
    EXPIRED = 'expired'


def new_document_id():
    """Opaque identifier; it doubles as the public share token."""
    return str(uuid.uuid4())


class Estimate(Base):
    """
    Estimate.

    Created in ``draft``; sending moves it to ``sent``, a client signature to
    ``accepted``. An accepted estimate can be converted into an invoice, at
    which point ``converted_to_invoice_id`` is populated.
    """

    __tablename__ = 'estimate'

    id = Column(String(36), primary_key=True, default=new_document_id)
    organization_id = Column(Integer, ForeignKey('organization.id'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('app_user.id'), nullable=True)
    client_id = Column(Integer, ForeignKey('client.id'), nullable=True, index=True)
    project_id = Column(Integer, ForeignKey('project.id'), nullable=True, index=True)

    estimate_number = Column(String(64), nullable=False)
    title = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=EstimateStatus.DRAFT.value, index=True)
    issue_date = Column(Date, nullable=False)
    expiry_date = Column(Date, nullable=True)

    subtotal = Column(Numeric(14, 2), nullable=False, default=0)
    tax_rate = Column(Numeric(6, 3), nullable=False, default=0)
    tax_amount = Column(Numeric(14, 2), nullable=False, default=0)
    total_amount = Column(Numeric(14, 2), nullable=False, default=0)

    notes = Column(Text, nullable=True)
    terms = Column(Text, nullable=True)

    # Send tracking
    sent_at = Column(DateTime, nullable=True)
    last_sent_at = Column(DateTime, nullable=True)
    send_count = Column(Integer, nullable=False, default=0)

    # Acceptance
    client_signature = Column(Text, nullable=True)
    signed_at = Column(DateTime, nullable=True)
    converted_to_invoice_id = Column(String(36), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    organization = relationship('Organization')
    client = relationship('Client')
    project = relationship('Project')
    items = relationship(
        'EstimateItem',
        back_populates='estimate',
        cascade='all, delete-orphan',
        order_by='EstimateItem.display_order',
    )

    def __repr__(self):
        return f"<Estimate(id={self.id}, number='{self.estimate_number}', status='{self.status}', total={self.total_amount})>"

    @property
    def is_expired(self):
        """Check if estimate is past its expiry date (calculated, not stored)."""
        if self.status in (EstimateStatus.DRAFT.value, EstimateStatus.SENT.value, EstimateStatus.OPENED.value) \
                and self.expiry_date:
            return today() > self.expiry_date
        return self.status == EstimateStatus.EXPIRED.value

    @property
    def is_convertible(self):
        """Whether convert_to_invoice would accept this estimate."""
        return self.status == EstimateStatus.ACCEPTED.value
