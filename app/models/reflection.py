from sqlalchemy import Column, String, Boolean, DateTime, Enum, ForeignKey, Index, Text, text
from sqlalchemy.orm import relationship
from app.core.database import Base
from datetime import datetime
import enum


class NextAction(str, enum.Enum):
    CONTINUE = "continue"
    MODIFY = "modify"
    END = "end"


class Reflection(Base):
    __tablename__ = "reflections"
    __table_args__ = (
        # At most one end reflection per experiment
        Index(
            "uq_reflections_one_end_per_experiment",
            "experiment_id",
            unique=True,
            postgresql_where=text("is_end"),
            sqlite_where=text("is_end"),
        ),
    )

    id = Column(String, primary_key=True, index=True)
    experiment_id = Column(String, ForeignKey("experiments.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    is_end = Column(Boolean, nullable=False, default=False)
    next_action = Column(Enum(NextAction), nullable=True)  # required when is_end
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationships
    experiment = relationship("Experiment", back_populates="reflections")
