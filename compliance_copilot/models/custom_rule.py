"""Custom rule model."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from compliance_copilot.database import Base


class CustomRuleRecord(Base):
    """An organisation-defined rule added to every run's catalog."""

    __tablename__ = "custom_rules"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    kind: Mapped[str] = mapped_column(String(30), nullable=False, default="pattern")
    # Allowed: pattern, dependency-check, license-check
    pattern: Mapped[str | None] = mapped_column(Text)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False, default="custom")
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    fix_template: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def to_rule_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "kind": self.kind,
            "pattern": self.pattern,
            "severity": self.severity,
            "category": self.category,
            "enabled": self.enabled,
            "fix_template": self.fix_template,
        }
