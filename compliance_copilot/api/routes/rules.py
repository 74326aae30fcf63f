"""Rule catalog routes."""

from fastapi import APIRouter, HTTPException, status

from compliance_copilot.analyzers.builtin_rules import BUILTIN_RULES
from compliance_copilot.analyzers.rules import PatternRule, rule_from_dict
from compliance_copilot.api.deps import RecordService
from compliance_copilot.exceptions import RuleEvaluationError
from compliance_copilot.schemas.rule import RuleCreate, RuleListResponse, RuleResponse

router = APIRouter()

BUILTIN_IDS = frozenset(rule.id for rule in BUILTIN_RULES)


@router.get("", response_model=RuleListResponse)
async def list_rules(records: RecordService):
    """List built-in and custom rules."""
    rules = [RuleResponse(**rule.to_dict(), builtin=True) for rule in BUILTIN_RULES]
    rules.extend(
        RuleResponse(**record.to_rule_dict()) for record in await records.list_custom_rule_records()
    )
    return RuleListResponse(rules=rules, total=len(rules))


@router.post("", response_model=RuleResponse, status_code=status.HTTP_201_CREATED)
async def create_rule(rule_data: RuleCreate, records: RecordService):
    """Create or replace a custom rule."""
    if rule_data.id in BUILTIN_IDS:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Rule id {rule_data.id} is reserved by a built-in rule",
        )

    try:
        rule = rule_from_dict(rule_data.model_dump())
        if isinstance(rule, PatternRule):
            rule.compile()
    except (ValueError, RuleEvaluationError) as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )

    record = await records.save_custom_rule(rule)
    return RuleResponse(**record.to_rule_dict())


@router.delete("/{rule_id}")
async def delete_rule(rule_id: str, records: RecordService):
    """Delete a custom rule. Built-in rules cannot be deleted."""
    if rule_id in BUILTIN_IDS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Built-in rules cannot be deleted",
        )
    if not await records.delete_custom_rule(rule_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Rule not found",
        )
    return {"status": "deleted", "id": rule_id}
