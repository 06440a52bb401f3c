"""Approval rule engine: decides which roles approve a request, in order"""
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from sqlalchemy.orm import Session

from oeapp.config import settings
from oeapp.models.approval_rule import ApprovalRule
from oeapp.utils.conditions import OPERATORS, evaluate_trigger, field_value
from oeapp.utils.logger import logger

ACTION_SKIP = "skip"
ACTION_ADD = "add"


@dataclass(frozen=True)
class RuleSpec:
    """Plain rule values, detached from the ORM session"""

    name: str
    trigger_field: str
    trigger_operator: str
    trigger_value: str
    action_type: str
    target_approver: str
    priority: int = 100
    id: int = 0

    @classmethod
    def from_model(cls, rule: ApprovalRule) -> "RuleSpec":
        return cls(
            name=rule.name,
            trigger_field=rule.trigger_field,
            trigger_operator=rule.trigger_operator,
            trigger_value=rule.trigger_value,
            action_type=rule.action_type,
            target_approver=rule.target_approver,
            priority=rule.priority,
            id=rule.id,
        )


DEFAULT_RULES = (
    RuleSpec(
        name="Happy stores skip Area Manager",
        trigger_field="store",
        trigger_operator="contains",
        trigger_value="Happy",
        action_type=ACTION_SKIP,
        target_approver="AreaManager",
        priority=10,
    ),
    RuleSpec(
        name="Happy categories skip Area Manager",
        trigger_field="category",
        trigger_operator="contains",
        trigger_value="Happy",
        action_type=ACTION_SKIP,
        target_approver="AreaManager",
        priority=11,
    ),
    RuleSpec(
        name="Helpers require HR",
        trigger_field="category",
        trigger_operator="equals",
        trigger_value="Helpers",
        action_type=ACTION_ADD,
        target_approver="HR",
        priority=20,
    ),
)


def ordered_rules(rules: Iterable[RuleSpec]) -> List[RuleSpec]:
    """Stable evaluation order: priority first, then id, then name."""
    return sorted(rules, key=lambda r: (r.priority, r.id, r.name))


def load_active_rules(db: Session) -> List[RuleSpec]:
    """Load the active rule set.

    Falls back to :data:`DEFAULT_RULES` only when no rule has ever been
    configured; deactivating every row yields an empty rule set.
    """
    if db.query(ApprovalRule.id).first() is None:
        return list(DEFAULT_RULES)
    rows = (
        db.query(ApprovalRule)
        .filter(ApprovalRule.is_active == True)
        .order_by(ApprovalRule.priority.asc(), ApprovalRule.id.asc())
        .all()
    )
    return [RuleSpec.from_model(r) for r in rows]


def _insert_before_markers(chain: List[str], role: str, markers: Sequence[str]) -> None:
    position = len(chain)
    while position > 0 and chain[position - 1] in markers:
        position -= 1
    chain.insert(position, role)


def build_chain(
    category: Optional[str],
    context: Optional[Mapping[str, Any]] = None,
    rules: Optional[Iterable[RuleSpec]] = None,
    base_chain: Optional[Sequence[str]] = None,
    terminal_markers: Optional[Sequence[str]] = None,
) -> List[str]:
    """Return the ordered approver roles for a request.

    Args:
        category: Request category (e.g. "Cleaning", "Helpers").
        context:  Other request attributes rules may look at (``store``, ...).
        rules:    Rule set; defaults to :data:`DEFAULT_RULES`.
        base_chain: Starting roles; defaults to ``APPROVAL_BASE_CHAIN``.
        terminal_markers: Roles that must stay last; ``add`` inserts before them.

    Returns:
        Role identifiers in approval order. Identities are not resolved here.
    """
    chain = list(base_chain if base_chain is not None else settings.APPROVAL_BASE_CHAIN)
    markers = list(terminal_markers if terminal_markers is not None else settings.APPROVAL_TERMINAL_MARKERS)
    rule_set = ordered_rules(rules if rules is not None else DEFAULT_RULES)

    for rule in rule_set:
        if rule.trigger_operator not in OPERATORS:
            logger.warning(f"Ignoring rule with unknown operator: {rule.name}", extra={"action": rule.trigger_operator})
            continue

        actual = field_value(rule.trigger_field, category, context)
        if not evaluate_trigger(rule.trigger_operator, actual, rule.trigger_value):
            continue

        if rule.action_type == ACTION_SKIP:
            chain = [role for role in chain if role != rule.target_approver]
        elif rule.action_type == ACTION_ADD:
            if rule.target_approver not in chain:
                _insert_before_markers(chain, rule.target_approver, markers)
        else:
            logger.warning(f"Ignoring rule with unknown action: {rule.name}", extra={"action": rule.action_type})

    return chain
