"""Database models"""
from oeapp.models.approval_rule import ApprovalRule
from oeapp.models.approver import Approver, StoreResponsible
from oeapp.models.cleaning_request import ApprovalHistory, CleaningRequest
from oeapp.models.escalation import ActionItem, Escalation, Notification
from oeapp.models.user_session import UserSession

__all__ = [
    "ActionItem",
    "ApprovalHistory",
    "ApprovalRule",
    "Approver",
    "CleaningRequest",
    "Escalation",
    "Notification",
    "StoreResponsible",
    "UserSession",
]
