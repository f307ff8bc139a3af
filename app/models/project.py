"""Project model."""
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class Project(Base):
    """Construction project; estimates and invoices may be filed under one."""

    __tablename__ = 'project'

    id = Column(Integer, primary_key=True, autoincrement=True)
    organization_id = Column(Integer, ForeignKey('organization.id'), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey('client.id'), nullable=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default='active')
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    organization = relationship('Organization')
    client = relationship('Client')

    def __repr__(self):
        return f"<Project(id={self.id}, name='{self.name}')>"
