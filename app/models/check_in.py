from sqlalchemy import Column, String, Boolean, Date, DateTime, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from app.core.database import Base
from datetime import datetime


class CheckIn(Base):
    __tablename__ = "check_ins"
    __table_args__ = (
        # The calendar date is the idempotency key for a check-in
        UniqueConstraint("experiment_id", "check_in_date", name="uq_check_ins_experiment_date"),
    )

    id = Column(String, primary_key=True, index=True)
    experiment_id = Column(String, ForeignKey("experiments.id", ondelete="CASCADE"), nullable=False, index=True)
    check_in_date = Column(Date, nullable=False, index=True)
    completed = Column(Boolean, nullable=False)
    note = Column(Text, nullable=True)
    recorded_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    experiment = relationship("Experiment", back_populates="check_ins")
