"""Pydantic schemas for request/response validation"""
from oeapp.schemas.approver import ApproverCandidate, ApproverCreate, ApproverResponse, ApproverUpdate
from oeapp.schemas.cleaning_request import RequestCreate, RequestListResponse, RequestResponse, RequestSnapshot
from oeapp.schemas.decision import (
    DecisionRequest,
    DecisionResponse,
    PublicApprovalPage,
    PublicDecisionRequest,
    PublicDecisionResponse,
)
from oeapp.schemas.escalation import EscalationResponse, EscalationStats, SweepResponse
from oeapp.schemas.rule import RuleCreate, RuleResponse, RuleUpdate

__all__ = [
    "ApproverCandidate",
    "ApproverCreate",
    "ApproverResponse",
    "ApproverUpdate",
    "RequestCreate",
    "RequestListResponse",
    "RequestResponse",
    "RequestSnapshot",
    "DecisionRequest",
    "DecisionResponse",
    "PublicApprovalPage",
    "PublicDecisionRequest",
    "PublicDecisionResponse",
    "EscalationResponse",
    "EscalationStats",
    "SweepResponse",
    "RuleCreate",
    "RuleResponse",
    "RuleUpdate",
]
