"""Finding model."""

import uuid

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from compliance_copilot.database import Base


class FindingRecord(Base):
    """A deduplicated finding belonging to an analysis run."""

    __tablename__ = "findings"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    analysis_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("analyses.id", ondelete="CASCADE"), nullable=False
    )
    # Output order within the run
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Classification
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    # Allowed: security, license, quality, custom
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    # Allowed: critical, high, medium, low, info
    rule_id: Mapped[str] = mapped_column(String(100), nullable=False)
    rule_name: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)

    # Location
    file: Mapped[str] = mapped_column(String(1000), nullable=False)
    line: Mapped[int | None] = mapped_column(Integer)
    column: Mapped[int | None] = mapped_column(Integer)
    code: Mapped[str | None] = mapped_column(Text)

    fix_suggestion: Mapped[str | None] = mapped_column(Text)

    analysis: Mapped["AnalysisRecord"] = relationship(back_populates="findings")  # noqa: F821
