"""InvoiceItem model for invoice line items."""
from sqlalchemy import Column, Integer, String, Numeric, Text, ForeignKey
from sqlalchemy.orm import relationship
from app.database import Base


class InvoiceItem(Base):
    """Invoice line item."""

    __tablename__ = 'invoice_item'

    id = Column(Integer, primary_key=True, autoincrement=True)
    invoice_id = Column(String(36), ForeignKey('invoice.id', ondelete='CASCADE'), nullable=False, index=True)
    description = Column(Text, nullable=False)
    quantity = Column(Numeric(12, 3), nullable=False)
    unit_price = Column(Numeric(14, 2), nullable=False)
    total_price = Column(Numeric(14, 2), nullable=False)
    display_order = Column(Integer, nullable=False, default=0)

    # Relationships
    invoice = relationship('Invoice', back_populates='items')

    def __repr__(self):
        return f"<InvoiceItem(id={self.id}, invoice_id={self.invoice_id}, total={self.total_price})>"
