# projects.py
import logging
from typing import List, Optional, Tuple

from sqlmodel import Session, select, func

import db
import funding
from errors import NotFound, ValidationFailed
from models import (
  AddOn, CostLineItem, Package, Project, ProjectPaymentStatus, TeamAssignment,
  TeamPaymentRecord, Transaction, TransactionKind,
)
from schemas import RecordPaymentRequest

logger = logging.getLogger(__name__)

PAYMENT_CATEGORY = "Project Payment"


def get_project(session: Session, project_id: str) -> Project:
  project = session.get(Project, project_id)
  if not project:
    raise NotFound(f"Project {project_id} not found")
  return project

def list_projects(session: Session) -> List[Project]:
  return session.exec(select(Project).order_by(Project.created_at.desc())).all()


def payment_status(total_cost: int, amount_paid: int) -> str:
  if total_cost > 0 and amount_paid >= total_cost:
    return ProjectPaymentStatus.PAID
  if amount_paid > 0:
    return ProjectPaymentStatus.PARTIALLY_PAID
  return ProjectPaymentStatus.UNPAID

def refresh_payment_status(project: Project) -> None:
  project.payment_status = payment_status(project.total_cost, project.amount_paid)

def apply_cost_delta(session: Session, project: Project, delta: int) -> None:
  project.total_cost += delta
  refresh_payment_status(project)
  session.add(project)


def cost_items_total(session: Session, project_id: str) -> int:
  total = session.exec(
    select(func.coalesce(func.sum(CostLineItem.amount), 0)).where(CostLineItem.project_id == project_id)
  ).one()
  return int(total)

def expected_total(session: Session, project: Project) -> int:
  base = project.package_price + project.add_ons_total - project.discount_amount
  return base + cost_items_total(session, project.id)


def resolve_pricing(
  session: Session,
  package_id: Optional[str],
  unit_price: Optional[int],
  add_on_ids: List[str],
) -> Tuple[Optional[Package], int, List[dict]]:
  """Package, effective package price and add-on snapshots for a new project."""
  package = None
  price = 0
  if package_id:
    package = session.get(Package, package_id)
    if not package or not package.is_active:
      raise NotFound(f"Package {package_id} not found")
    price = package.price
  if unit_price is not None:
    price = unit_price

  add_ons = []
  for add_on_id in add_on_ids:
    add_on = session.get(AddOn, add_on_id)
    if not add_on or not add_on.is_active:
      raise NotFound(f"Add-on {add_on_id} not found")
    add_ons.append({"id": add_on.id, "name": add_on.name, "price": add_on.price})
  return package, price, add_ons


def record_payment(session: Session, project_id: str, req: RecordPaymentRequest) -> Transaction:
  project = get_project(session, project_id)
  with db.locked_sources([req.source_id]):
    try:
      txn = funding.post(
        session,
        req.source_id,
        req.amount,
        TransactionKind.INCOME,
        PAYMENT_CATEGORY,
        req.description or f"Payment for {project.project_name}",
        project_id=project.id,
        method="Transfer",
      )
      project.amount_paid += req.amount
      refresh_payment_status(project)
      session.add(project)
      db.commit(session)
    except Exception:
      session.rollback()
      raise
    session.refresh(txn)
  logger.info("Recorded payment %s on %s into %s", req.amount, project_id, req.source_id)
  return txn


def delete_project(session: Session, project_id: str) -> None:
  """Delete a project with its ledger rows, reversing each row's balance delta."""
  project = get_project(session, project_id)
  txns = session.exec(select(Transaction).where(Transaction.project_id == project_id)).all()
  with db.locked_sources([t.funding_source_id for t in txns]):
    try:
      for txn in txns:
        funding.reverse(session, txn)
      session.flush()
      for model in (TeamPaymentRecord, TeamAssignment, CostLineItem):
        for row in session.exec(select(model).where(model.project_id == project_id)).all():
          session.delete(row)
      session.flush()
      session.delete(project)
      db.commit(session)
    except Exception:
      session.rollback()
      raise
  logger.info("Deleted project %s and %d transaction(s)", project_id, len(txns))


def project_transactions(session: Session, project_id: str) -> List[Transaction]:
  return session.exec(
    select(Transaction).where(Transaction.project_id == project_id).order_by(Transaction.created_at)
  ).all()

def ensure_discount(base: int, discount: int) -> int:
  if discount < 0:
    raise ValidationFailed("Discount cannot be negative")
  return min(discount, base)
