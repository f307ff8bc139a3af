"""CostCode model - organization-level categories for estimate lines."""
from sqlalchemy import Column, Integer, String, ForeignKey, UniqueConstraint
from app.database import Base


class CostCode(Base):
    """Cost code (e.g. ``03-100 Concrete Forming``)."""

    __tablename__ = 'cost_code'
    __table_args__ = (UniqueConstraint('organization_id', 'code', name='uq_cost_code_org_code'),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    organization_id = Column(Integer, ForeignKey('organization.id'), nullable=False, index=True)
    code = Column(String(32), nullable=False)
    name = Column(String(200), nullable=False)

    def __repr__(self):
        return f"<CostCode(id={self.id}, code='{self.code}', name='{self.name}')>"
