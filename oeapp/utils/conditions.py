"""Trigger evaluation for approval rules.

A rule fires when the value of its ``trigger_field`` satisfies its
``trigger_operator`` against ``trigger_value``. Comparison is
case-insensitive and ignores surrounding whitespace.

Supported operators:
  equals   : field value equals the trigger value
  contains : field value contains the trigger value as a substring

Supported fields:
  category : the request category
  store    : the request store name
  <other>  : any key of the request's context attributes

Example rule::

  {"trigger_field": "store", "trigger_operator": "contains",
   "trigger_value": "Happy", "action_type": "skip",
   "target_approver": "AreaManager"}
"""
from typing import Any, Callable, Dict, Mapping, Optional

OPERATORS: Dict[str, Callable[[str, str], bool]] = {
    "equals": lambda actual, expected: actual == expected,
    "contains": lambda actual, expected: expected in actual,
}


def _normalize(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip().lower()


def field_value(field: str, category: Optional[str], context: Optional[Mapping[str, Any]]) -> Any:
    """Return the raw value a rule's trigger field refers to."""
    if field == "category":
        return category
    return (context or {}).get(field)


def evaluate_trigger(operator: str, actual: Any, expected: Any) -> bool:
    """Return True if ``actual`` satisfies ``operator`` against ``expected``.

    Unknown operators never match. An empty expected value never matches, so a
    half-configured rule cannot fire on every request.
    """
    check = OPERATORS.get(operator)
    if check is None:
        return False
    expected_norm = _normalize(expected)
    if not expected_norm:
        return False
    return check(_normalize(actual), expected_norm)
