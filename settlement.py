# settlement.py
import logging
from datetime import datetime
from typing import List, Optional, Sequence, Union

from sqlalchemy import update
from sqlmodel import Session, select

import db
import funding
from errors import AlreadySettled, InsufficientFunds, NotFound, ValidationFailed
from models import CostLineItem, PaymentState, TeamPaymentRecord, Transaction, TransactionKind

logger = logging.getLogger(__name__)

Payable = Union[CostLineItem, TeamPaymentRecord]

COST_CATEGORY_LABELS = {
  "printing": "Printing",
  "transport": "Transport",
  "custom": "Project Cost",
}
TEAM_FEE_CATEGORY = "Team Fee"


def _describe(payable: Payable) -> str:
  if isinstance(payable, TeamPaymentRecord):
    return f"Team fee: {payable.member_name or payable.member_id}"
  return f"{COST_CATEGORY_LABELS.get(payable.category, 'Project Cost')}: {payable.label}"

def _category(payable: Payable) -> str:
  if isinstance(payable, TeamPaymentRecord):
    return TEAM_FEE_CATEGORY
  return COST_CATEGORY_LABELS.get(payable.category, "Project Cost")

def _ensure_unpaid(payable: Payable) -> None:
  if payable.status == PaymentState.PAID:
    raise AlreadySettled(f"{payable.id} is already settled", item_id=payable.id)

def _claim(session: Session, payable: Payable, source_id: str, now: datetime) -> None:
  # Unpaid -> Paid only once, whichever source the competing settler holds
  model = type(payable)
  result = session.exec(
    update(model)
    .where(model.id == payable.id, model.status != PaymentState.PAID)
    .values(status=PaymentState.PAID, paid_at=now, funding_source_id=source_id)
    .execution_options(synchronize_session=False)
  )
  if result.rowcount != 1:
    raise AlreadySettled(f"{payable.id} is already settled", item_id=payable.id)

def _apply(session: Session, payable: Payable, source_id: str, now: datetime) -> Transaction:
  txn = funding.post(
    session,
    source_id,
    payable.amount,
    TransactionKind.EXPENSE,
    _category(payable),
    _describe(payable),
    project_id=payable.project_id,
    cost_item_id=payable.id if isinstance(payable, CostLineItem) else None,
    team_payment_id=payable.id if isinstance(payable, TeamPaymentRecord) else None,
  )
  payable.status = PaymentState.PAID
  payable.paid_at = now
  payable.funding_source_id = source_id
  session.add(payable)
  return txn


def settle_payables(
  session: Session,
  payables: Sequence[Payable],
  source_id: str,
  now: Optional[datetime] = None,
) -> List[Transaction]:
  """Settle every payable from one source, or none of them.

  The source must cover the sum of all amounts before anything is written.
  """
  now = now or datetime.utcnow()
  with db.locked_sources([source_id]):
    source = funding.get_source(session, source_id, for_update=True)
    for payable in payables:
      session.refresh(payable)
      _ensure_unpaid(payable)
    required = sum(p.amount for p in payables)
    if required > source.balance:
      logger.info("Settlement refused: %s holds %s, %s required", source_id, source.balance, required)
      raise InsufficientFunds(source_id, source.balance, required)

    try:
      for payable in payables:
        _claim(session, payable, source_id, now)
      txns = [_apply(session, p, source_id, now) for p in payables]
      db.commit(session)
    except Exception:
      session.rollback()
      raise
    for txn in txns:
      session.refresh(txn)

  logger.info(
    "Settled %d item(s) for %s from %s",
    len(txns), required, source_id,
  )
  return txns


def _load_items(session: Session, item_ids: Sequence[str]) -> List[CostLineItem]:
  if len(set(item_ids)) != len(item_ids):
    raise ValidationFailed("Duplicate item ids in batch")
  items = session.exec(select(CostLineItem).where(CostLineItem.id.in_(item_ids))).all()
  found = {i.id: i for i in items}
  missing = [i for i in item_ids if i not in found]
  if missing:
    raise NotFound(f"Cost items not found: {', '.join(missing)}")
  return [found[i] for i in item_ids]


def settle(session: Session, item_id: str, source_id: str, now: Optional[datetime] = None) -> Transaction:
  return settle_payables(session, _load_items(session, [item_id]), source_id, now)[0]

def settle_batch(session: Session, item_ids: Sequence[str], source_id: str, now: Optional[datetime] = None) -> List[Transaction]:
  return settle_payables(session, _load_items(session, item_ids), source_id, now)
