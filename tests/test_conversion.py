"""Lead conversion, direct project creation and public bookings."""
from datetime import date

import pytest
from sqlmodel import select

import conversion
import funding
import projects
import team_ledger
from conftest import FakeUploader, make_source
from errors import DepositFailed, InvalidPromo, NotFound, PackageRequired, UploadFailed, ValidationFailed
from models import BookingStatus, Client, FundingSource, Lead, LeadStatus, Project, PromoCode, Transaction
from schemas import (
  AddCostItemRequest, ConvertLeadRequest, CreateLeadRequest, CreateProjectRequest, PublicBookingRequest,
  TeamAssignmentIn, UpdateLeadRequest,
)


class TestLeads:
  def test_create_and_update(self, session):
    lead = conversion.create_lead(session, CreateLeadRequest(name="Budi", channel="Referral"))
    lead = conversion.update_lead(session, lead.id, UpdateLeadRequest(status="FollowUp", notes="Call on Friday"))
    assert lead.status == LeadStatus.FOLLOW_UP
    assert lead.notes == "Call on Friday"

  def test_terminal_lead_keeps_status(self, session, lead):
    conversion.update_lead(session, lead.id, UpdateLeadRequest(status="Rejected"))
    with pytest.raises(ValidationFailed):
      conversion.update_lead(session, lead.id, UpdateLeadRequest(status="Discussion"))


class TestPromo:
  def test_percentage(self, session, catalog):
    promo, discount = conversion.evaluate_promo(session, "hemat10", 6_000_000)
    assert promo.code == "HEMAT10"
    assert discount == 600_000

  def test_fixed_discount_capped_at_base(self, session):
    session.add(PromoCode(code="BIG", discount_type="fixed", discount_value=9_000))
    session.commit()
    _, discount = conversion.evaluate_promo(session, "BIG", 5_000)
    assert discount == 5_000

  def test_expired(self, session):
    session.add(PromoCode(code="PAST", discount_value=5, expiry_date=date(2020, 1, 1)))
    session.commit()
    with pytest.raises(InvalidPromo):
      conversion.evaluate_promo(session, "PAST", 100, today=date(2024, 1, 1))

  def test_exhausted(self, session):
    session.add(PromoCode(code="ONCE", discount_value=5, max_usage=1, usage_count=1))
    session.commit()
    with pytest.raises(InvalidPromo):
      conversion.evaluate_promo(session, "ONCE", 100)


class TestConvertLead:
  def test_conversion_with_deposit(self, session, catalog, lead):
    cash = make_source(session, "Cash", 0, kind="pocket")
    req = ConvertLeadRequest(package_id=catalog["package"].id, deposit=1_500_000, deposit_source_id=cash.id)

    result = conversion.convert_lead(session, lead.id, req)

    assert result.lead.status == LeadStatus.CONVERTED
    assert result.lead.converted_client_id == result.client.id
    assert result.client.name == "Siti"
    project = result.project
    assert project.client_id == result.client.id
    assert project.project_name == "Event Siti"
    assert project.status == "Confirmed"
    assert project.total_cost == 5_000_000
    assert project.amount_paid == 1_500_000
    assert project.payment_status == "PartiallyPaid"
    [txn] = session.exec(select(Transaction)).all()
    assert txn.amount == 1_500_000
    assert txn.kind == "Income"
    assert txn.project_id == project.id
    assert result.deposit_transaction.id == txn.id
    assert funding.get_balance(session, cash.id) == 1_500_000
    assert result.warnings == []

  def test_package_required_before_any_write(self, session, lead):
    with pytest.raises(PackageRequired):
      conversion.convert_lead(session, lead.id, ConvertLeadRequest())
    session.refresh(lead)
    assert lead.status == LeadStatus.DISCUSSION
    assert session.exec(select(Client)).all() == []

  def test_deposit_needs_a_source(self, session, catalog, lead):
    with pytest.raises(ValidationFailed):
      conversion.convert_lead(session, lead.id, ConvertLeadRequest(package_id=catalog["package"].id, deposit=10))

  def test_promo_and_add_ons(self, session, catalog, lead):
    req = ConvertLeadRequest(package_id=catalog["package"].id, add_on_ids=["ADD-DRONE"], promo_code="HEMAT10")
    result = conversion.convert_lead(session, lead.id, req)
    assert result.project.add_ons_total == 1_000_000
    assert result.project.discount_amount == 600_000
    assert result.project.total_cost == 5_400_000
    assert result.project.payment_status == "Unpaid"
    assert session.exec(select(PromoCode).where(PromoCode.code == "HEMAT10")).one().usage_count == 1

  def test_invalid_promo_is_a_warning(self, session, catalog, lead):
    req = ConvertLeadRequest(package_id=catalog["package"].id, promo_code="OLD")
    result = conversion.convert_lead(session, lead.id, req)
    assert result.project.discount_amount == 0
    assert result.project.total_cost == 5_000_000
    assert len(result.warnings) == 1
    assert "inactive" in result.warnings[0]

  def test_unit_price_overrides_package(self, session, catalog, lead):
    req = ConvertLeadRequest(package_id=catalog["package"].id, unit_price=4_200_000)
    assert conversion.convert_lead(session, lead.id, req).project.total_cost == 4_200_000

  def test_failed_deposit_keeps_created_records(self, session, catalog, lead):
    card = make_source(session, "Closed card", 0)
    row = session.get(FundingSource, card.id)
    row.is_active = False
    session.add(row)
    session.commit()
    req = ConvertLeadRequest(package_id=catalog["package"].id, deposit=500_000, deposit_source_id=card.id)

    with pytest.raises(DepositFailed) as info:
      conversion.convert_lead(session, lead.id, req)

    context = info.value.context
    project = session.get(Project, context["project_id"])
    assert project is not None
    assert project.amount_paid == 0
    assert session.get(Client, context["client_id"]) is not None
    assert context["cause"] == "ValidationFailed"
    session.refresh(lead)
    assert lead.status == LeadStatus.CONVERTED
    assert session.exec(select(Transaction)).all() == []

  def test_converted_lead_cannot_convert_again(self, session, catalog, lead):
    req = ConvertLeadRequest(package_id=catalog["package"].id)
    conversion.convert_lead(session, lead.id, req)
    with pytest.raises(ValidationFailed):
      conversion.convert_lead(session, lead.id, req)


class TestCreateProject:
  def test_direct_creation(self, session, catalog):
    req = CreateProjectRequest(
      project_name="Prewedding Rina",
      client_name="Rina",
      package_id=catalog["package"].id,
      add_on_ids=["ADD-DRONE"],
      discount_amount=200_000,
      status="Preparation",
      cost_items=[AddCostItemRequest(label="Fuel", amount=150_000, category="transport")],
      team=[TeamAssignmentIn(member_id="TM-RAKA", reward=50_000)],
    )
    project = conversion.create_project(session, req)

    assert project.progress == 10
    assert project.total_cost == 5_000_000 + 1_000_000 - 200_000 + 150_000
    assert project.total_cost == projects.expected_total(session, project)
    assert projects.project_transactions(session, project.id) == []
    assert [r.member_id for r in team_ledger.list_records(session, project.id)] == ["TM-RAKA"]

  def test_unknown_package(self, session):
    with pytest.raises(NotFound):
      conversion.create_project(session, CreateProjectRequest(project_name="X", package_id="PKG-NONE"))


class TestPublicBooking:
  def _request(self, **overrides):
    fields = dict(client_name="Dewi", phone="0813", package_id="PKG-GOLD", deposit=1_000_000, payment_ref="TRX-77")
    fields.update(overrides)
    return PublicBookingRequest(**fields)

  def test_booking_waits_behind_gate(self, session, catalog, monkeypatch):
    bca = make_source(session, "BCA", 0)
    monkeypatch.setattr(conversion, "DEFAULT_FUNDING_SOURCE_ID", bca.id)
    uploader = FakeUploader()

    result = conversion.submit_booking(session, self._request(), proof=("proof.jpg", b"jpeg"), uploader=uploader)

    project = result.project
    assert project.booking_status == BookingStatus.NEW
    assert project.project_name == "Event Dewi (Wedding Gold)"
    assert project.deposit_proof_url == "https://evidence.test/proof.jpg"
    assert project.amount_paid == 1_000_000
    assert result.lead.channel == "Website"
    assert result.lead.status == LeadStatus.CONVERTED
    assert funding.get_balance(session, bca.id) == 1_000_000
    assert uploader.uploads == [("proof.jpg", b"jpeg")]

  def test_referenced_lead_is_converted(self, session, catalog, lead, monkeypatch):
    monkeypatch.setattr(conversion, "DEFAULT_FUNDING_SOURCE_ID", None)
    result = conversion.submit_booking(session, self._request(deposit=0, lead_id=lead.id))
    assert result.lead.id == lead.id
    assert result.lead.status == LeadStatus.CONVERTED
    assert len(session.exec(select(Lead)).all()) == 1

  def test_upload_failure_aborts_before_writes(self, session, catalog, monkeypatch):
    bca = make_source(session, "BCA", 0)
    monkeypatch.setattr(conversion, "DEFAULT_FUNDING_SOURCE_ID", bca.id)
    with pytest.raises(UploadFailed):
      conversion.submit_booking(session, self._request(), proof=("p.jpg", b"x"), uploader=FakeUploader(fail=True))
    assert session.exec(select(Client)).all() == []
    assert session.exec(select(Project)).all() == []

  def test_deposit_without_configured_source(self, session, catalog, monkeypatch):
    monkeypatch.setattr(conversion, "DEFAULT_FUNDING_SOURCE_ID", None)
    with pytest.raises(ValidationFailed):
      conversion.submit_booking(session, self._request())

  def test_package_required(self, session):
    with pytest.raises(PackageRequired):
      conversion.submit_booking(session, self._request(package_id=None))
