"""Admin configuration endpoints: approval rules, approver directory, store responsibles"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from oeapp.api.deps import require_admin
from oeapp.database import get_db
from oeapp.models.approval_rule import ApprovalRule
from oeapp.models.approver import Approver, StoreResponsible
from oeapp.schemas.approver import (
    ApproverCreate,
    ApproverResponse,
    ApproverUpdate,
    StoreResponsibleCreate,
    StoreResponsibleResponse,
)
from oeapp.schemas.rule import ChainPreviewResponse, RuleCreate, RuleResponse, RuleUpdate
from oeapp.services.rule_engine import build_chain, load_active_rules
from oeapp.utils.logger import logger

router = APIRouter(prefix="/admin", tags=["admin"])


def _store_response(responsible: StoreResponsible) -> StoreResponsibleResponse:
    manager = responsible.area_manager
    return StoreResponsibleResponse(
        id=responsible.id,
        store=responsible.store,
        area_manager_id=responsible.area_manager_id,
        area_manager_name=manager.name if manager else None,
        area_manager_email=manager.email if manager else None,
        is_active=responsible.is_active,
        created_at=responsible.created_at,
    )


# ---------------------------------------------------------------------------
# Approval rules
# ---------------------------------------------------------------------------

@router.get("/rules", response_model=List[RuleResponse])
def list_rules(
    db: Session = Depends(get_db),
    _: str = Depends(require_admin),
):
    """List approval rules in evaluation order"""
    return db.query(ApprovalRule).order_by(ApprovalRule.priority.asc(), ApprovalRule.id.asc()).all()


@router.post("/rules", response_model=RuleResponse, status_code=status.HTTP_201_CREATED)
def create_rule(
    data: RuleCreate,
    db: Session = Depends(get_db),
    _: str = Depends(require_admin),
):
    """
    Create an approval rule.

    Once any rule exists the built-in default rules no longer apply.
    """
    rule = ApprovalRule(**data.model_dump())
    db.add(rule)
    db.commit()
    db.refresh(rule)

    logger.info(f"Created approval rule: {rule.name}", extra={"action": rule.action_type, "role": rule.target_approver})
    return rule


@router.patch("/rules/{rule_id}", response_model=RuleResponse)
def update_rule(
    rule_id: int,
    data: RuleUpdate,
    db: Session = Depends(get_db),
    _: str = Depends(require_admin),
):
    """Update an approval rule (e.g. deactivate it)"""
    rule = db.query(ApprovalRule).filter(ApprovalRule.id == rule_id).first()
    if not rule:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Rule {rule_id} not found")

    for key, value in data.model_dump(exclude_unset=True).items():
        setattr(rule, key, value)
    db.commit()
    db.refresh(rule)

    logger.info(f"Updated approval rule: {rule.name}")
    return rule


@router.delete("/rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_rule(
    rule_id: int,
    db: Session = Depends(get_db),
    _: str = Depends(require_admin),
):
    rule = db.query(ApprovalRule).filter(ApprovalRule.id == rule_id).first()
    if not rule:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Rule {rule_id} not found")
    db.delete(rule)
    db.commit()

    logger.info(f"Deleted approval rule: {rule_id}")


@router.get("/rules/preview", response_model=ChainPreviewResponse)
def preview_chain(
    category: str = Query(..., min_length=1),
    store: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    _: str = Depends(require_admin),
):
    """Roles the current rule set would put in the chain for a category and store"""
    roles = build_chain(category, context={"store": store}, rules=load_active_rules(db))
    return ChainPreviewResponse(category=category, store=store, roles=roles)


# ---------------------------------------------------------------------------
# Approver directory
# ---------------------------------------------------------------------------

@router.get("/approvers", response_model=List[ApproverResponse])
def list_approvers(
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    _: str = Depends(require_admin),
):
    query = db.query(Approver)
    if not include_inactive:
        query = query.filter(Approver.is_active == True)
    return query.order_by(Approver.id.asc()).all()


@router.post("/approvers", response_model=ApproverResponse, status_code=status.HTTP_201_CREATED)
def create_approver(
    data: ApproverCreate,
    db: Session = Depends(get_db),
    _: str = Depends(require_admin),
):
    """Add a person to the approver directory with one or more roles"""
    approver = Approver(
        name=data.name,
        email=data.email.strip(),
        roles=sorted(set(data.roles)),
        is_active=data.is_active,
    )
    db.add(approver)
    db.commit()
    db.refresh(approver)

    logger.info(f"Created approver: {approver.email}", extra={"role": ",".join(approver.roles)})
    return approver


@router.patch("/approvers/{approver_id}", response_model=ApproverResponse)
def update_approver(
    approver_id: int,
    data: ApproverUpdate,
    db: Session = Depends(get_db),
    _: str = Depends(require_admin),
):
    approver = db.query(Approver).filter(Approver.id == approver_id).first()
    if not approver:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Approver {approver_id} not found")

    changes = data.model_dump(exclude_unset=True)
    if "roles" in changes and changes["roles"] is not None:
        changes["roles"] = sorted(set(changes["roles"]))
    for key, value in changes.items():
        setattr(approver, key, value)
    db.commit()
    db.refresh(approver)

    logger.info(f"Updated approver: {approver.email}")
    return approver


# ---------------------------------------------------------------------------
# Store responsibles
# ---------------------------------------------------------------------------

@router.get("/stores", response_model=List[StoreResponsibleResponse])
def list_store_responsibles(
    db: Session = Depends(get_db),
    _: str = Depends(require_admin),
):
    rows = (
        db.query(StoreResponsible)
        .filter(StoreResponsible.is_active == True)
        .order_by(StoreResponsible.store.asc())
        .all()
    )
    return [_store_response(r) for r in rows]


@router.put("/stores", response_model=StoreResponsibleResponse)
def set_store_responsible(
    data: StoreResponsibleCreate,
    db: Session = Depends(get_db),
    _: str = Depends(require_admin),
):
    """
    Assign the Area Manager responsible for a store.

    Replaces the store's current assignment.
    """
    manager = db.query(Approver).filter(Approver.id == data.area_manager_id, Approver.is_active == True).first()
    if not manager:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Approver {data.area_manager_id} not found or inactive",
        )

    db.query(StoreResponsible).filter(
        StoreResponsible.store == data.store,
        StoreResponsible.is_active == True,
    ).update({"is_active": False}, synchronize_session=False)

    responsible = StoreResponsible(store=data.store, area_manager_id=manager.id, is_active=True)
    db.add(responsible)
    db.commit()
    db.refresh(responsible)

    logger.info(f"Store {data.store} assigned to {manager.email}", extra={"role": "AreaManager"})
    return _store_response(responsible)
