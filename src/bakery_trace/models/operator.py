"""
Operator model for the people who run production.

Operators are the users recorded on production runs and snapshots. The
lot code carries the initials of the operator's display name, falling back
to the username when no display name is set.
"""

from sqlalchemy import Column, String, Index
from sqlalchemy.orm import relationship

from .base import BaseModel


class Operator(BaseModel):
    """
    Operator (application user) model.

    Attributes:
        username: Unique login name
        display_name: Human-readable name printed in reports; may be empty
    """

    __tablename__ = "operators"

    username = Column(String(64), nullable=False, unique=True)
    display_name = Column(String(255), nullable=True)

    production_runs = relationship("ProductionRun", back_populates="operator")

    __table_args__ = (Index("idx_operator_display_name", "display_name"),)

    @property
    def name(self) -> str:
        """Display name, falling back to username."""
        return self.display_name or self.username or ""

    def __repr__(self) -> str:
        """String representation of operator."""
        return f"Operator(id={self.id}, username='{self.username}')"
