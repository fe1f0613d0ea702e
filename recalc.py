# recalc.py
import logging
from datetime import datetime
from typing import Dict, Optional, Set, Tuple

from sqlmodel import Session, select

import db
import funding
import projects
from config import DEFAULT_FUNDING_SOURCE_ID
from errors import PersistenceFailure, ValidationFailed
from models import CostCategory, CostLineItem, PaymentState, Project, Transaction, TransactionKind
from schemas import EditCostRequest
from settlement import COST_CATEGORY_LABELS

logger = logging.getLogger(__name__)

MAX_LOCK_ATTEMPTS = 3


def _booked(
  session: Session,
  project_id: str,
  category: str,
  fresh: bool = False,
) -> Tuple[Optional[CostLineItem], Optional[Transaction]]:
  item_stmt = select(CostLineItem).where(
    CostLineItem.project_id == project_id,
    CostLineItem.category == category,
    CostLineItem.booked == True,  # noqa: E712
  )
  if fresh:
    item_stmt = item_stmt.execution_options(populate_existing=True)
  item = session.exec(item_stmt).first()
  if not item:
    return None, None
  txn_stmt = select(Transaction).where(Transaction.cost_item_id == item.id)
  if fresh:
    txn_stmt = txn_stmt.execution_options(populate_existing=True)
  return item, session.exec(txn_stmt).first()


def booked_costs(session: Session, project_id: str) -> Dict[str, int]:
  result = {}
  for category in CostCategory.ALL:
    item, _ = _booked(session, project_id, category)
    result[category] = item.amount if item else 0
  return result


def _sources_to_lock(current: dict, changes: Dict[str, int], new_source_id: Optional[str]) -> Set[str]:
  ids = {txn.funding_source_id for _, txn in current.values() if txn and txn.funding_source_id}
  needs_source = any(current[category][0] is None and value > 0 for category, value in changes.items())
  if needs_source:
    if not new_source_id:
      raise ValidationFailed("A funding source is required to book a new project cost")
    ids.add(new_source_id)
  return ids


def recalculate(
  session: Session,
  project_id: str,
  req: EditCostRequest,
  now: Optional[datetime] = None,
) -> Project:
  """Apply new per-category lump sums to a project and correct its ledger.

  Each category moves the project total by its own delta. An existing booking
  transaction is rewritten in place and its source moved by the delta only; a
  category dropped to zero is refunded in full; a new category is booked
  against the request's source or the configured default.

  Bookings are read again once their sources are locked. If another writer
  moved a booking to a source that is not held, the locks are dropped and
  taken again for the new set.
  """
  now = now or datetime.utcnow()
  projects.get_project(session, project_id)
  changes = {
    category: getattr(req, category)
    for category in CostCategory.ALL
    if getattr(req, category) is not None
  }
  new_source_id = req.source_id or DEFAULT_FUNDING_SOURCE_ID
  current = {category: _booked(session, project_id, category) for category in changes}
  lock_ids = _sources_to_lock(current, changes, new_source_id)

  for _ in range(MAX_LOCK_ATTEMPTS):
    with db.locked_sources(lock_ids):
      project = projects.get_project(session, project_id)
      session.refresh(project)
      current = {category: _booked(session, project_id, category, fresh=True) for category in changes}
      needed = _sources_to_lock(current, changes, new_source_id)
      if not needed <= lock_ids:
        lock_ids = needed
        continue
      try:
        for category, new_value in changes.items():
          item, txn = current[category]
          old_value = item.amount if item else 0
          delta = new_value - old_value
          if delta == 0:
            continue
          _rebook(session, project, category, item, txn, new_value, delta, new_source_id, now)
          projects.apply_cost_delta(session, project, delta)
          logger.info("Recalculated %s on %s: %s -> %s", category, project_id, old_value, new_value)
        db.commit(session)
      except Exception:
        session.rollback()
        raise
      session.refresh(project)
      return project
  raise PersistenceFailure(f"Bookings of project {project_id} kept moving between sources, try again")


def _rebook(
  session: Session,
  project: Project,
  category: str,
  item: Optional[CostLineItem],
  txn: Optional[Transaction],
  new_value: int,
  delta: int,
  source_id: Optional[str],
  now: datetime,
) -> None:
  if txn:
    if new_value > 0:
      txn.amount = -new_value
      session.add(txn)
      if txn.funding_source_id:
        funding.adjust_balance(session, txn.funding_source_id, -delta)
      item.amount = new_value
      session.add(item)
    else:
      funding.reverse(session, txn)
      session.flush()
      session.delete(item)
    return

  if item:
    # Booked row without a ledger entry; only its amount is corrected
    if new_value > 0:
      item.amount = new_value
      session.add(item)
    else:
      session.delete(item)
    return

  label = COST_CATEGORY_LABELS[category]
  item = CostLineItem(
    project_id=project.id,
    label=label,
    amount=new_value,
    category=category,
    status=PaymentState.PAID,
    paid_at=now,
    funding_source_id=source_id,
    booked=True,
  )
  session.add(item)
  session.flush()
  funding.post(
    session,
    source_id,
    new_value,
    TransactionKind.EXPENSE,
    label,
    f"{label} - {project.project_name}",
    project_id=project.id,
    cost_item_id=item.id,
  )
