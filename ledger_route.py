# ledger_route.py
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

import costs
import db
import funding
import recalc
import settlement
import team_ledger
from db import get_session
from models import CostLineItem, FundingSource, Project, TeamPaymentRecord, Transaction
from schemas import (
  AddCostItemRequest, CreateSourceRequest, EditCostItemRequest, EditCostRequest, ReconcileView,
  SettleBatchRequest, SettleRequest, TeamSettleBatchRequest, TransferRequest,
)
from search import match

router = APIRouter(prefix="/api", tags=["ledger"])


# --------- Funding sources ---------
@router.get("/sources", response_model=List[FundingSource])
def list_sources(session: Session = Depends(get_session)):
  return funding.list_sources(session)

@router.post("/sources", response_model=FundingSource)
def create_source(req: CreateSourceRequest, session: Session = Depends(get_session)):
  source = funding.create_source(session, req.label, req.kind, req.opening_balance)
  db.commit(session)
  session.refresh(source)
  return source

@router.post("/sources/transfer", response_model=List[Transaction])
def transfer_between_sources(req: TransferRequest, session: Session = Depends(get_session)):
  return funding.transfer(session, req.from_source_id, req.to_source_id, req.amount, req.description)

@router.get("/sources/{source_id}", response_model=FundingSource)
def get_source(source_id: str, session: Session = Depends(get_session)):
  source = session.get(FundingSource, source_id)
  if not source:
    raise HTTPException(status_code=404, detail="Funding source not found")
  return source

@router.get("/sources/{source_id}/reconcile", response_model=ReconcileView)
def reconcile_source(source_id: str, session: Session = Depends(get_session)):
  return funding.reconcile(session, source_id)

@router.get("/transactions", response_model=List[Transaction])
def list_transactions(
  q: Optional[str] = None,
  project_id: Optional[str] = None,
  session: Session = Depends(get_session),
):
  stmt = select(Transaction).order_by(Transaction.created_at.desc())
  if project_id:
    stmt = stmt.where(Transaction.project_id == project_id)
  rows = session.exec(stmt).all()
  if not q:
    return rows
  return [r for r in rows if match(q, r.id, r.description, r.category, r.kind, r.funding_source_id)]


# --------- Cost items ---------
@router.get("/projects/{project_id}/costs", response_model=List[CostLineItem])
def list_costs(project_id: str, session: Session = Depends(get_session)):
  return costs.list_items(session, project_id)

@router.post("/projects/{project_id}/costs", response_model=CostLineItem)
def add_cost(project_id: str, req: AddCostItemRequest, session: Session = Depends(get_session)):
  return costs.add_item(session, project_id, req)

@router.patch("/costs/{item_id}", response_model=CostLineItem)
def edit_cost(item_id: str, req: EditCostItemRequest, session: Session = Depends(get_session)):
  return costs.edit_item(session, item_id, req)

@router.delete("/costs/{item_id}")
def delete_cost(item_id: str, session: Session = Depends(get_session)):
  costs.remove_item(session, item_id)
  return {"ok": True, "item_id": item_id}

@router.post("/projects/{project_id}/costs/seed", response_model=List[CostLineItem])
def seed_costs(project_id: str, session: Session = Depends(get_session)):
  return costs.seed_printing_items(session, project_id)

@router.post("/projects/{project_id}/costs/recalculate", response_model=Project)
def recalculate_costs(project_id: str, req: EditCostRequest, session: Session = Depends(get_session)):
  return recalc.recalculate(session, project_id, req)


# --------- Settlement ---------
@router.post("/costs/settle-batch", response_model=List[Transaction])
def settle_costs(req: SettleBatchRequest, session: Session = Depends(get_session)):
  return settlement.settle_batch(session, req.item_ids, req.source_id)

@router.post("/costs/{item_id}/settle", response_model=Transaction)
def settle_cost(item_id: str, req: SettleRequest, session: Session = Depends(get_session)):
  return settlement.settle(session, item_id, req.source_id)

@router.post("/projects/{project_id}/team/{member_id}/settle", response_model=Transaction)
def settle_team_member(project_id: str, member_id: str, req: SettleRequest, session: Session = Depends(get_session)):
  return team_ledger.settle_member(session, project_id, member_id, req.source_id)

@router.post("/team-payments/settle-batch", response_model=List[Transaction])
def settle_team_payments(req: TeamSettleBatchRequest, session: Session = Depends(get_session)):
  return team_ledger.settle_batch(session, req.keys, req.source_id)

@router.get("/team-payments", response_model=List[TeamPaymentRecord])
def list_team_payments(
  q: Optional[str] = None,
  status: Optional[str] = None,
  session: Session = Depends(get_session),
):
  stmt = select(TeamPaymentRecord)
  if status:
    stmt = stmt.where(TeamPaymentRecord.status == status)
  rows = session.exec(stmt).all()
  if not q:
    return rows
  return [r for r in rows if match(q, r.id, r.member_name, r.project_id)]
