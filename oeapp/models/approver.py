"""Approver directory and store responsible models"""
from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from oeapp.database import Base


class Approver(Base):
    """Approver model - a person who can hold one or more approval roles.

    ``roles`` is a list of role identifiers (AreaManager, HeadOfOperations, HR, ...).
    The same person may appear as a candidate for several roles.
    """

    __tablename__ = "approvers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True, index=True)
    roles = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class StoreResponsible(Base):
    """StoreResponsible model - the Area Manager accountable for a store"""

    __tablename__ = "store_responsibles"

    id = Column(Integer, primary_key=True, index=True)
    store = Column(String(255), nullable=False, index=True)
    area_manager_id = Column(Integer, ForeignKey("approvers.id"), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    area_manager = relationship("Approver")
