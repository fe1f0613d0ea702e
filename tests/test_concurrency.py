"""Concurrent writers on a file-backed database, one session per thread."""
import threading
import time

import pytest
from sqlmodel import Session, create_engine, select

import costs
import db
import funding
import recalc
import settlement
import workflow
from conftest import make_project, make_source
from errors import AlreadySettled
from models import Transaction
from schemas import AddCostItemRequest, EditCostRequest


@pytest.fixture
def file_engine(tmp_path, monkeypatch):
  engine = create_engine(
    f"sqlite:///{tmp_path / 'ledger.db'}",
    connect_args={"check_same_thread": False, "timeout": 30},
  )
  db.init_db(engine)
  monkeypatch.setattr(db, "engine", engine)
  yield engine
  engine.dispose()


@pytest.fixture
def file_session(file_engine):
  with Session(file_engine) as session:
    workflow.ensure_default_statuses(session)
    yield session


def _race(engine, hold, calls):
  """Start every call on its own thread while `hold` is locked, then let them go together."""
  results, errors = [], []

  def run(call):
    with Session(engine) as session:
      try:
        results.append(call(session))
      except Exception as exc:
        errors.append(exc)

  threads = [threading.Thread(target=run, args=(call,)) for call in calls]
  with db.locked_sources(hold):
    for thread in threads:
      thread.start()
    time.sleep(0.2)
  for thread in threads:
    thread.join(timeout=30)
  return results, errors


def test_same_category_recalculated_twice_at_once(file_engine, file_session):
  bca = make_source(file_session, "BCA", 1_000_000)
  project = make_project(file_session, price=5_000_000)
  recalc.recalculate(file_session, project.id, EditCostRequest(printing=200_000, source_id=bca.id))
  bca_id, project_id = bca.id, project.id
  edit = EditCostRequest(printing=500_000)

  results, errors = _race(file_engine, [bca_id], [
    lambda s: recalc.recalculate(s, project_id, edit),
    lambda s: recalc.recalculate(s, project_id, edit),
  ])

  assert errors == []
  assert len(results) == 2
  file_session.expire_all()
  [txn] = file_session.exec(select(Transaction)).all()
  assert txn.amount == -500_000
  assert funding.get_balance(file_session, bca_id) == 500_000
  assert funding.reconcile(file_session, bca_id)["consistent"] is True
  assert recalc.booked_costs(file_session, project_id)["printing"] == 500_000
  file_session.refresh(project)
  assert project.total_cost == 5_500_000


def test_one_item_settled_from_two_sources_at_once(file_engine, file_session):
  bca = make_source(file_session, "BCA", 1_000_000)
  cash = make_source(file_session, "Cash", 1_000_000, kind="pocket")
  project = make_project(file_session)
  item = costs.add_item(file_session, project.id, AddCostItemRequest(label="Album", amount=300_000))
  bca_id, cash_id, item_id = bca.id, cash.id, item.id

  results, errors = _race(file_engine, [bca_id, cash_id], [
    lambda s: settlement.settle(s, item_id, bca_id),
    lambda s: settlement.settle(s, item_id, cash_id),
  ])

  assert len(results) == 1
  assert [type(e) for e in errors] == [AlreadySettled]
  file_session.expire_all()
  [txn] = file_session.exec(select(Transaction)).all()
  assert txn.amount == -300_000
  balances = funding.get_balance(file_session, bca_id) + funding.get_balance(file_session, cash_id)
  assert balances == 1_700_000
  assert funding.reconcile(file_session, bca_id)["consistent"] is True
  assert funding.reconcile(file_session, cash_id)["consistent"] is True
