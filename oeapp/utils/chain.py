"""Approval chain value objects.

An approval chain is an ordered list of role-bound steps built once when a
request is submitted. Membership and order never change afterwards; deciding
a step produces a new chain with that step's status, comments and decision
time filled in.

The serialized form is a JSON list of step objects::

    [{"role": "AreaManager", "id": 12, "name": "...", "email": "...",
      "status": "Approved", "comments": "", "approvedAt": "2025-01-05T09:12:00"}]

``status``/``comments``/``approvedAt`` are omitted until a step is decided.
"""
import json
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Sequence, Union

STEP_PENDING = "Pending"
STEP_APPROVED = "Approved"
STEP_REJECTED = "Rejected"

ROLE_DISPLAY_NAMES = {
    "AreaManager": "Area Manager",
    "HeadOfOperations": "Head of Operations",
    "HR": "HR Manager",
}


def role_display_name(role: Optional[str]) -> str:
    """Human readable role label used in messages and emails."""
    if not role:
        return "next approver"
    return ROLE_DISPLAY_NAMES.get(role, role)


@dataclass(frozen=True)
class ApproverIdentity:
    """A concrete person resolved for a role"""

    id: Optional[Union[int, str]]
    name: Optional[str]
    email: Optional[str]

    @property
    def has_contact(self) -> bool:
        return bool(self.email and self.email.strip())


@dataclass(frozen=True)
class ApprovalStep:
    """One role-bound decision in the chain"""

    role: str
    approver: ApproverIdentity
    status: Optional[str] = None
    comments: Optional[str] = None
    decided_at: Optional[datetime] = None

    @property
    def is_decided(self) -> bool:
        return self.status in (STEP_APPROVED, STEP_REJECTED)

    def is_held_by(self, email: Optional[str]) -> bool:
        """Case-insensitive comparison of the acting email with this step's approver."""
        if not email or not self.approver.email:
            return False
        return email.strip().lower() == self.approver.email.strip().lower()

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "role": self.role,
            "id": self.approver.id,
            "name": self.approver.name,
            "email": self.approver.email,
        }
        if self.status is not None:
            data["status"] = self.status
        if self.comments is not None:
            data["comments"] = self.comments
        if self.decided_at is not None:
            data["approvedAt"] = self.decided_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ApprovalStep":
        decided_at = data.get("approvedAt")
        if isinstance(decided_at, str):
            decided_at = datetime.fromisoformat(decided_at.replace("Z", "+00:00")).replace(tzinfo=None)
        status = data.get("status")
        # Older rows wrote an explicit "Pending" for undecided steps
        if status == STEP_PENDING:
            status = None
        return cls(
            role=data["role"],
            approver=ApproverIdentity(
                id=data.get("id"),
                name=data.get("name"),
                email=data.get("email"),
            ),
            status=status,
            comments=data.get("comments"),
            decided_at=decided_at,
        )


class ApprovalChain:
    """Immutable ordered sequence of :class:`ApprovalStep`"""

    __slots__ = ("_steps",)

    def __init__(self, steps: Sequence[ApprovalStep] = ()):
        self._steps = tuple(steps)

    def __len__(self) -> int:
        return len(self._steps)

    def __iter__(self) -> Iterator[ApprovalStep]:
        return iter(self._steps)

    def __getitem__(self, index: int) -> ApprovalStep:
        return self._steps[index]

    def __eq__(self, other: object) -> bool:
        return isinstance(other, ApprovalChain) and self._steps == other._steps

    def __repr__(self) -> str:
        return f"ApprovalChain({[s.role for s in self._steps]})"

    @property
    def is_empty(self) -> bool:
        return not self._steps

    @property
    def roles(self) -> List[str]:
        return [step.role for step in self._steps]

    def step_at(self, index: int) -> Optional[ApprovalStep]:
        """Return the step at ``index`` or None when the index is past the end."""
        if 0 <= index < len(self._steps):
            return self._steps[index]
        return None

    def with_decision(
        self,
        index: int,
        status: str,
        comments: Optional[str],
        decided_at: datetime,
    ) -> "ApprovalChain":
        """Return a copy of the chain with step ``index`` decided."""
        if status not in (STEP_APPROVED, STEP_REJECTED):
            raise ValueError(f"Invalid step status: {status}")
        step = self.step_at(index)
        if step is None:
            raise IndexError(f"No step at index {index}")
        if step.is_decided:
            raise ValueError(f"Step {index} is already {step.status}")
        steps = list(self._steps)
        steps[index] = replace(step, status=status, comments=comments or "", decided_at=decided_at)
        return ApprovalChain(steps)

    def violations(self, current_step: int, terminal: bool) -> List[str]:
        """List chain invariant violations for the given pointer.

        Steps before ``current_step`` must be Approved; the step at
        ``current_step`` is undecided unless the request is terminal (a
        rejection leaves the pointer on the rejected step); no later step is
        decided.
        """
        problems = []
        for index, step in enumerate(self._steps):
            if index < current_step and step.status != STEP_APPROVED:
                problems.append(f"step {index} ({step.role}) before current step is {step.status or 'undecided'}")
            elif index == current_step and step.is_decided and not (terminal and step.status == STEP_REJECTED):
                problems.append(f"current step {index} ({step.role}) is already {step.status}")
            elif index > current_step and step.status is not None:
                problems.append(f"step {index} ({step.role}) after current step is {step.status}")
        return problems

    def to_list(self) -> List[Dict[str, Any]]:
        return [step.to_dict() for step in self._steps]

    def to_json(self) -> str:
        return json.dumps(self.to_list())

    @classmethod
    def from_json(cls, raw: Optional[str]) -> "ApprovalChain":
        if not raw:
            return cls()
        data = json.loads(raw)
        if not isinstance(data, list):
            raise ValueError("Approval chain must be a JSON list")
        return cls([ApprovalStep.from_dict(item) for item in data])
