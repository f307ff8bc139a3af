"""Per-organization counters backing estimate and invoice numbers."""
from sqlalchemy import Column, Integer, String, UniqueConstraint, ForeignKey
from app.database import Base


class DocumentSequence(Base):
    """Last number handed out for (organization, document type, year)."""

    __tablename__ = 'document_sequence'
    __table_args__ = (
        UniqueConstraint('organization_id', 'document_type', 'year', name='uq_document_sequence'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    organization_id = Column(Integer, ForeignKey('organization.id'), nullable=False)
    document_type = Column(String(16), nullable=False)  # EST, INV
    year = Column(Integer, nullable=False)
    last_value = Column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<DocumentSequence({self.document_type}-{self.year} org={self.organization_id} last={self.last_value})>"
