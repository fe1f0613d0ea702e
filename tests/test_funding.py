"""Funding source registry: balances, signed postings and reconciliation."""
import pytest

import funding
from conftest import make_project, make_source
from errors import InsufficientFunds, NotFound, ValidationFailed
from models import FundingSource, TransactionKind


class TestSources:
  def test_opening_balance_is_current_balance(self, session):
    source = make_source(session, "BCA", 1_000_000)
    assert source.balance == 1_000_000
    assert source.opening_balance == 1_000_000
    assert funding.get_balance(session, source.id) == 1_000_000

  def test_negative_opening_balance_rejected(self, session):
    with pytest.raises(ValidationFailed):
      funding.create_source(session, "Broken", "card", -1)

  def test_unknown_source(self, session):
    with pytest.raises(NotFound):
      funding.get_source(session, "SRC-MISSING")

  def test_list_in_creation_order(self, session):
    make_source(session, "BCA", 10)
    make_source(session, "Cash", 20, kind="pocket")
    assert [s.label for s in funding.list_sources(session)] == ["BCA", "Cash"]


class TestAdjustBalance:
  def test_debit_beyond_balance_refused(self, session):
    source = make_source(session, "BCA", 100)
    with pytest.raises(InsufficientFunds) as info:
      funding.adjust_balance(session, source.id, -101)
    assert info.value.context == {"source_id": source.id, "balance": 100, "required": 101}
    session.rollback()
    assert funding.get_balance(session, source.id) == 100

  def test_debit_to_exactly_zero(self, session):
    source = make_source(session, "BCA", 100)
    funding.adjust_balance(session, source.id, -100)
    session.commit()
    assert funding.get_balance(session, source.id) == 0

  def test_inactive_source_refuses_movement(self, session):
    source = make_source(session, "Old card", 100)
    source.is_active = False
    session.add(source)
    session.commit()
    with pytest.raises(ValidationFailed):
      funding.adjust_balance(session, source.id, 10)


class TestPostings:
  def test_income_and_expense_are_signed(self, session):
    source = make_source(session, "Cash", 0, kind="pocket")
    income = funding.post(session, source.id, 500, TransactionKind.INCOME, "Project Payment", "DP")
    expense = funding.post(session, source.id, 200, TransactionKind.EXPENSE, "Printing", "Album")
    session.commit()
    assert income.amount == 500
    assert expense.amount == -200
    assert funding.get_balance(session, source.id) == 300

  def test_reverse_restores_balance(self, session):
    source = make_source(session, "BCA", 1_000)
    project = make_project(session)
    txn = funding.post(session, source.id, 400, TransactionKind.EXPENSE, "Transport", "Fuel", project_id=project.id)
    session.commit()
    funding.reverse(session, txn)
    session.commit()
    assert funding.get_balance(session, source.id) == 1_000

  def test_reconcile_matches_after_postings(self, session):
    source = make_source(session, "BCA", 1_000)
    funding.post(session, source.id, 250, TransactionKind.INCOME, "Project Payment", "DP")
    funding.post(session, source.id, 100, TransactionKind.EXPENSE, "Printing", "Album")
    session.commit()
    view = funding.reconcile(session, source.id)
    assert view["transactions_total"] == 150
    assert view["expected_balance"] == 1_150
    assert view["balance"] == 1_150
    assert view["consistent"] is True

  def test_reconcile_flags_drift(self, session):
    source = make_source(session, "BCA", 1_000)
    row = session.get(FundingSource, source.id)
    row.balance = 900
    session.add(row)
    session.commit()
    assert funding.reconcile(session, source.id)["consistent"] is False


class TestTransfer:
  def test_card_to_pocket(self, session):
    card = make_source(session, "BCA", 1_000_000)
    pocket = make_source(session, "Printing pocket", 0, kind="pocket")

    out, into = funding.transfer(session, card.id, pocket.id, 400_000)

    assert (out.amount, out.kind, out.funding_source_id) == (-400_000, TransactionKind.EXPENSE, card.id)
    assert (into.amount, into.kind, into.funding_source_id) == (400_000, TransactionKind.INCOME, pocket.id)
    assert out.category == into.category == "Transfer Internal"
    assert out.description == "Transfer BCA to Printing pocket"
    assert funding.get_balance(session, card.id) == 600_000
    assert funding.get_balance(session, pocket.id) == 400_000
    assert funding.reconcile(session, card.id)["consistent"] is True
    assert funding.reconcile(session, pocket.id)["consistent"] is True

  def test_shortfall_moves_nothing(self, session):
    pocket = make_source(session, "Cash", 100, kind="pocket")
    card = make_source(session, "BCA", 0)
    with pytest.raises(InsufficientFunds):
      funding.transfer(session, pocket.id, card.id, 101)
    assert funding.get_balance(session, pocket.id) == 100
    assert funding.get_balance(session, card.id) == 0
    assert funding.reconcile(session, card.id)["transactions_total"] == 0

  def test_same_source_rejected(self, session):
    card = make_source(session, "BCA", 100)
    with pytest.raises(ValidationFailed):
      funding.transfer(session, card.id, card.id, 10)

  def test_unknown_receiver(self, session):
    card = make_source(session, "BCA", 100)
    with pytest.raises(NotFound):
      funding.transfer(session, card.id, "SRC-MISSING", 10)
    assert funding.get_balance(session, card.id) == 100
