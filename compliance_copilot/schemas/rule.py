"""Rule schemas."""

from pydantic import BaseModel, Field


class RuleBase(BaseModel):
    """Base rule schema."""

    id: str = Field(..., min_length=1, max_length=100, pattern=r"^[A-Za-z0-9_.-]+$")
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    kind: str = "pattern"
    pattern: str | None = None
    severity: str
    category: str = "custom"
    enabled: bool = True
    fix_template: str | None = None


class RuleCreate(RuleBase):
    """Schema for creating a custom rule."""


class RuleResponse(RuleBase):
    """Rule response schema."""

    builtin: bool = False

    class Config:
        from_attributes = True


class RuleListResponse(BaseModel):
    rules: list[RuleResponse]
    total: int
