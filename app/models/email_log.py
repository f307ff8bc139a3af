"""Email log model - one row per transactional email handed to the mailer."""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON
from app.database import Base
from app.utils.dates import utcnow


class EmailLog(Base):
    """Record of an estimate, invoice or payment reminder email."""

    __tablename__ = 'email_log'

    id = Column(Integer, primary_key=True)
    organization_id = Column(Integer, ForeignKey('organization.id'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('app_user.id'), nullable=True)
    to_email = Column(String(255), nullable=False)
    subject = Column(String(255), nullable=False)
    template_type = Column(String(32), nullable=False)  # estimate, invoice, payment_reminder
    estimate_id = Column(String(36), nullable=True, index=True)
    invoice_id = Column(String(36), nullable=True, index=True)
    status = Column(String(20), nullable=False, default='sent')
    message_id = Column(String(255), nullable=True)
    details = Column('metadata', JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<EmailLog(id={self.id}, template='{self.template_type}', to='{self.to_email}')>"
