"""Tests for approval chain construction from rules"""
import pytest
from sqlalchemy.orm import Session

from oeapp.models.approval_rule import ApprovalRule
from oeapp.services.rule_engine import (
    ACTION_ADD,
    ACTION_SKIP,
    DEFAULT_RULES,
    RuleSpec,
    build_chain,
    load_active_rules,
)
from oeapp.utils.conditions import evaluate_trigger


@pytest.mark.parametrize("category,store,expected", [
    ("Cleaning", "Main Store", ["AreaManager", "HeadOfOperations"]),
    ("Helpers", "Main Store", ["AreaManager", "HeadOfOperations", "HR"]),
    ("Helpers", "Happy Kids Mall", ["HeadOfOperations", "HR"]),
    ("Happy Days Cleaning", "Main Store", ["HeadOfOperations"]),
    ("Cleaning", "Happy Kids Mall", ["HeadOfOperations"]),
])
def test_default_rules(category, store, expected):
    """Built-in rules skip the Area Manager for Happy and add HR for Helpers"""
    assert build_chain(category, context={"store": store}) == expected


def test_build_chain_is_deterministic():
    """Same inputs and rule set always give the same chain, whatever the rule order"""
    first = build_chain("Helpers", context={"store": "Happy Kids Mall"}, rules=list(DEFAULT_RULES))
    second = build_chain("Helpers", context={"store": "Happy Kids Mall"}, rules=list(reversed(DEFAULT_RULES)))
    assert first == second == ["HeadOfOperations", "HR"]


def test_matching_is_case_insensitive():
    assert build_chain("helpers", context={"store": "HAPPY mall"}) == ["HeadOfOperations", "HR"]
    assert evaluate_trigger("equals", "  Helpers ", "helpers")
    assert not evaluate_trigger("equals", "Helpers extra", "helpers")


def test_empty_trigger_value_never_matches():
    assert not evaluate_trigger("contains", "Cleaning", "")
    assert not evaluate_trigger("unknown", "Cleaning", "Cleaning")


def test_add_never_duplicates_a_role():
    rules = [RuleSpec(
        name="Always Head of Ops",
        trigger_field="category",
        trigger_operator="contains",
        trigger_value="Clean",
        action_type=ACTION_ADD,
        target_approver="HeadOfOperations",
    )]
    assert build_chain("Cleaning", rules=rules) == ["AreaManager", "HeadOfOperations"]


def test_add_inserts_before_terminal_markers():
    rules = [RuleSpec(
        name="Helpers require HR",
        trigger_field="category",
        trigger_operator="equals",
        trigger_value="Helpers",
        action_type=ACTION_ADD,
        target_approver="HR",
    )]
    chain = build_chain(
        "Helpers",
        rules=rules,
        base_chain=["AreaManager", "Dashboard"],
        terminal_markers=["Dashboard"],
    )
    assert chain == ["AreaManager", "HR", "Dashboard"]


def test_priority_orders_skip_and_add():
    """A later skip removes a role an earlier add introduced"""
    rules = [
        RuleSpec(name="skip hr", trigger_field="category", trigger_operator="equals",
                 trigger_value="Helpers", action_type=ACTION_SKIP, target_approver="HR", priority=50),
        RuleSpec(name="add hr", trigger_field="category", trigger_operator="equals",
                 trigger_value="Helpers", action_type=ACTION_ADD, target_approver="HR", priority=5),
    ]
    assert build_chain("Helpers", rules=rules) == ["AreaManager", "HeadOfOperations"]


def test_unknown_operator_and_action_are_ignored():
    rules = [
        RuleSpec(name="bad operator", trigger_field="category", trigger_operator="regex",
                 trigger_value=".*", action_type=ACTION_SKIP, target_approver="AreaManager"),
        RuleSpec(name="bad action", trigger_field="category", trigger_operator="equals",
                 trigger_value="Cleaning", action_type="replace", target_approver="HR"),
    ]
    assert build_chain("Cleaning", rules=rules) == ["AreaManager", "HeadOfOperations"]


def test_all_skipped_gives_empty_chain():
    rules = [
        RuleSpec(name="skip am", trigger_field="category", trigger_operator="equals",
                 trigger_value="Internal", action_type=ACTION_SKIP, target_approver="AreaManager"),
        RuleSpec(name="skip ho", trigger_field="category", trigger_operator="equals",
                 trigger_value="Internal", action_type=ACTION_SKIP, target_approver="HeadOfOperations"),
    ]
    assert build_chain("Internal", rules=rules) == []


def test_load_active_rules_defaults_when_table_empty(db: Session):
    assert load_active_rules(db) == list(DEFAULT_RULES)


def test_load_active_rules_from_database(db: Session):
    db.add_all([
        ApprovalRule(name="Deep clean needs HR", trigger_field="category", trigger_operator="contains",
                     trigger_value="deep", action_type="add", target_approver="HR", priority=30),
        ApprovalRule(name="Disabled", trigger_field="category", trigger_operator="equals",
                     trigger_value="Cleaning", action_type="skip", target_approver="AreaManager",
                     priority=1, is_active=False),
    ])
    db.commit()

    rules = load_active_rules(db)
    assert [r.name for r in rules] == ["Deep clean needs HR"]
    assert build_chain("Deep Clean", context={"store": "Happy Mall"}, rules=rules) == [
        "AreaManager", "HeadOfOperations", "HR",
    ]


def test_deactivating_every_rule_disables_defaults(db: Session):
    db.add(ApprovalRule(name="Off", trigger_field="category", trigger_operator="equals",
                        trigger_value="Helpers", action_type="add", target_approver="HR", is_active=False))
    db.commit()

    rules = load_active_rules(db)
    assert rules == []
    assert build_chain("Helpers", context={"store": "Happy Mall"}, rules=rules) == [
        "AreaManager", "HeadOfOperations",
    ]
