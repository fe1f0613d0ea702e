# costs.py
import logging
from typing import List

from sqlmodel import Session, select

import db
import projects
from errors import ItemLocked, NotFound
from models import CostCategory, CostLineItem, Package, PaymentState
from schemas import AddCostItemRequest, EditCostItemRequest

logger = logging.getLogger(__name__)


def list_items(session: Session, project_id: str) -> List[CostLineItem]:
  projects.get_project(session, project_id)
  return session.exec(
    select(CostLineItem).where(CostLineItem.project_id == project_id).order_by(CostLineItem.category)
  ).all()

def get_item(session: Session, item_id: str) -> CostLineItem:
  item = session.get(CostLineItem, item_id)
  if not item:
    raise NotFound(f"Cost item {item_id} not found")
  return item

def _ensure_editable(item: CostLineItem) -> None:
  if item.status == PaymentState.PAID:
    raise ItemLocked(f"Cost item {item.id} is paid and can no longer change", item_id=item.id)


def add_item(session: Session, project_id: str, req: AddCostItemRequest, commit: bool = True) -> CostLineItem:
  project = projects.get_project(session, project_id)
  item = CostLineItem(project_id=project.id, label=req.label, amount=req.amount, category=req.category)
  session.add(item)
  projects.apply_cost_delta(session, project, req.amount)
  if commit:
    db.commit(session)
    session.refresh(item)
    logger.info("Added %s item %s (%s) to %s", item.category, item.id, item.amount, project_id)
  return item

def edit_item(session: Session, item_id: str, req: EditCostItemRequest) -> CostLineItem:
  item = get_item(session, item_id)
  _ensure_editable(item)
  if req.label is not None:
    item.label = req.label
  if req.category is not None:
    item.category = req.category
  if req.amount is not None and req.amount != item.amount:
    project = projects.get_project(session, item.project_id)
    projects.apply_cost_delta(session, project, req.amount - item.amount)
    item.amount = req.amount
  session.add(item)
  db.commit(session)
  session.refresh(item)
  logger.info("Edited cost item %s, amount now %s", item.id, item.amount)
  return item

def remove_item(session: Session, item_id: str) -> None:
  item = get_item(session, item_id)
  _ensure_editable(item)
  project = projects.get_project(session, item.project_id)
  projects.apply_cost_delta(session, project, -item.amount)
  session.delete(item)
  db.commit(session)
  logger.info("Removed cost item %s from %s", item_id, project.id)


def seed_printing_items(session: Session, project_id: str) -> List[CostLineItem]:
  """Populate printing items from the package's physical items when the project has none."""
  project = projects.get_project(session, project_id)
  existing = session.exec(
    select(CostLineItem).where(
      CostLineItem.project_id == project_id,
      CostLineItem.category == CostCategory.PRINTING,
      CostLineItem.booked == False,  # noqa: E712
    )
  ).first()
  if existing or not project.package_id:
    return []
  package = session.get(Package, project.package_id)
  if not package or not package.physical_items:
    return []

  items = []
  for entry in package.physical_items:
    item = CostLineItem(
      project_id=project.id,
      label=str(entry.get("name") or "Printed item"),
      amount=int(entry.get("price") or 0),
      category=CostCategory.PRINTING,
    )
    session.add(item)
    items.append(item)
  projects.apply_cost_delta(session, project, sum(i.amount for i in items))
  db.commit(session)
  for item in items:
    session.refresh(item)
  logger.info("Seeded %d printing item(s) on %s from package %s", len(items), project_id, package.id)
  return items
