# funding.py
import logging
from typing import List, Optional

from sqlmodel import Session, select, func

import db
from errors import InsufficientFunds, NotFound, ValidationFailed
from models import FundingSource, Transaction, TransactionKind

logger = logging.getLogger(__name__)

TRANSFER_CATEGORY = "Transfer Internal"


def get_source(session: Session, source_id: str, for_update: bool = False) -> FundingSource:
  stmt = select(FundingSource).where(FundingSource.id == source_id)
  if for_update:
    stmt = stmt.with_for_update().execution_options(populate_existing=True)
  source = session.exec(stmt).first()
  if not source:
    raise NotFound(f"Funding source {source_id} not found")
  return source

def get_balance(session: Session, source_id: str) -> int:
  return get_source(session, source_id).balance

def list_sources(session: Session) -> List[FundingSource]:
  return session.exec(select(FundingSource).order_by(FundingSource.created_at)).all()

def create_source(session: Session, label: str, kind: str, opening_balance: int = 0) -> FundingSource:
  if opening_balance < 0:
    raise ValidationFailed("Opening balance cannot be negative")
  source = FundingSource(label=label, kind=kind, balance=opening_balance, opening_balance=opening_balance)
  session.add(source)
  return source


def adjust_balance(session: Session, source_id: str, delta: int) -> FundingSource:
  """Apply a signed delta. Debits that would leave the source negative are refused.

  Does not commit; the caller holds the source lock until its commit.
  """
  source = get_source(session, source_id, for_update=True)
  if not source.is_active:
    raise ValidationFailed(f"Funding source {source.label} is inactive")
  if delta < 0 and source.balance + delta < 0:
    raise InsufficientFunds(source.id, source.balance, -delta)
  source.balance += delta
  session.add(source)
  return source


def post(
  session: Session,
  source_id: Optional[str],
  amount: int,
  kind: str,
  category: str,
  description: str,
  project_id: Optional[str] = None,
  cost_item_id: Optional[str] = None,
  team_payment_id: Optional[str] = None,
  method: str = "System",
) -> Transaction:
  """One ledger row and its one balance delta. `amount` is unsigned."""
  signed = amount if kind == TransactionKind.INCOME else -amount
  if source_id:
    adjust_balance(session, source_id, signed)
  txn = Transaction(
    description=description,
    amount=signed,
    kind=kind,
    category=category,
    method=method,
    project_id=project_id,
    funding_source_id=source_id,
    cost_item_id=cost_item_id,
    team_payment_id=team_payment_id,
  )
  session.add(txn)
  return txn

def reverse(session: Session, txn: Transaction) -> None:
  """Undo a transaction's delta on its source and delete it."""
  if txn.funding_source_id and txn.amount:
    adjust_balance(session, txn.funding_source_id, -txn.amount)
  session.delete(txn)


def transfer(
  session: Session,
  from_id: str,
  to_id: str,
  amount: int,
  description: Optional[str] = None,
) -> List[Transaction]:
  """Move money between two sources: an Expense on one, an Income on the other.

  Both sources are locked for the whole move and it commits once.
  """
  if from_id == to_id:
    raise ValidationFailed("A transfer needs two different funding sources")
  if amount <= 0:
    raise ValidationFailed("Transfer amount must be positive")

  with db.locked_sources([from_id, to_id]):
    try:
      sender = get_source(session, from_id, for_update=True)
      receiver = get_source(session, to_id, for_update=True)
      note = description or f"Transfer {sender.label} to {receiver.label}"
      txns = [
        post(session, from_id, amount, TransactionKind.EXPENSE, TRANSFER_CATEGORY, note, method="Transfer"),
        post(session, to_id, amount, TransactionKind.INCOME, TRANSFER_CATEGORY, note, method="Transfer"),
      ]
      db.commit(session)
    except Exception:
      session.rollback()
      raise
    for txn in txns:
      session.refresh(txn)
  logger.info("Transferred %s from %s to %s", amount, from_id, to_id)
  return txns


def reconcile(session: Session, source_id: str) -> dict:
  source = get_source(session, source_id)
  total = session.exec(
    select(func.coalesce(func.sum(Transaction.amount), 0)).where(Transaction.funding_source_id == source_id)
  ).one()
  expected = source.opening_balance + int(total)
  return {
    "source_id": source.id,
    "opening_balance": source.opening_balance,
    "transactions_total": int(total),
    "expected_balance": expected,
    "balance": source.balance,
    "consistent": expected == source.balance,
  }
