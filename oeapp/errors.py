"""Workflow error taxonomy.

Validation errors (not found, already finalized, not current approver) are
raised before any mutation. Notification failures never surface as workflow
errors; the class exists so delivery code can raise and catch it locally.
"""
from typing import Optional


class WorkflowError(Exception):
    """Base class for approval workflow errors"""

    code = "workflow_error"

    def __init__(self, message: str, request_id: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.request_id = request_id


class RequestNotFound(WorkflowError):
    code = "not_found"


class AlreadyFinalized(WorkflowError):
    """Decision attempted on a request that reached FullyApproved or Rejected"""

    code = "already_processed"

    def __init__(self, message: str, request_id: Optional[int] = None, status: Optional[str] = None):
        super().__init__(message, request_id)
        self.status = status


class NotCurrentApprover(WorkflowError):
    code = "not_current_approver"


class InvalidDecisionToken(WorkflowError):
    code = "invalid_token"


class UnresolvedApprover(WorkflowError):
    """No contact could be found for a role in the chain"""

    code = "unresolved_approver"

    def __init__(self, role: str, message: Optional[str] = None):
        super().__init__(message or f"No approver could be resolved for role {role}")
        self.role = role


class PersistenceConflict(WorkflowError):
    """The request changed between read and conditional write"""

    code = "conflict"


class NotificationDeliveryFailed(WorkflowError):
    code = "notification_failed"
