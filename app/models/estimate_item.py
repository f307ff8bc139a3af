"""EstimateItem model for estimate line items."""
from sqlalchemy import Column, Integer, String, Numeric, Text, ForeignKey
from sqlalchemy.orm import relationship
from app.database import Base


class EstimateItem(Base):
    """
    Estimate line item.

    ``total_price`` is stored as supplied by the caller; the service never
    recomputes it from quantity and unit price.
    """

    __tablename__ = 'estimate_item'

    id = Column(Integer, primary_key=True, autoincrement=True)
    estimate_id = Column(String(36), ForeignKey('estimate.id', ondelete='CASCADE'), nullable=False, index=True)
    description = Column(Text, nullable=False)
    quantity = Column(Numeric(12, 3), nullable=False)
    unit_price = Column(Numeric(14, 2), nullable=False)
    total_price = Column(Numeric(14, 2), nullable=False)
    cost_code_id = Column(Integer, ForeignKey('cost_code.id'), nullable=True)
    display_order = Column(Integer, nullable=False, default=0)

    # Relationships
    estimate = relationship('Estimate', back_populates='items')
    cost_code = relationship('CostCode')

    @property
    def cost_code_name(self):
        return self.cost_code.name if self.cost_code else 'Uncategorized'

    def __repr__(self):
        return f"<EstimateItem(id={self.id}, estimate_id={self.estimate_id}, qty={self.quantity}, total={self.total_price})>"
