# conversion.py
import logging
from datetime import date, datetime
from typing import List, Optional, Tuple

from sqlmodel import Session, select

import costs
import db
import funding
import projects
import team_ledger
import workflow
from config import CONVERTED_PROJECT_STATUS, DEFAULT_FUNDING_SOURCE_ID
from errors import DepositFailed, InvalidPromo, LedgerError, NotFound, PackageRequired, ValidationFailed
from models import (
  BookingStatus, Client, Lead, LeadStatus, Project, PromoCode, Transaction, TransactionKind,
)
from schemas import (
  AssignTeamRequest, ConversionResult, ConvertLeadRequest, CreateLeadRequest, CreateProjectRequest,
  PublicBookingRequest, UpdateLeadRequest,
)

logger = logging.getLogger(__name__)

DEPOSIT_CATEGORY = "Project Deposit"


# --------- Leads ---------
def get_lead(session: Session, lead_id: str) -> Lead:
  lead = session.get(Lead, lead_id)
  if not lead:
    raise NotFound(f"Lead {lead_id} not found")
  return lead

def list_leads(session: Session) -> List[Lead]:
  return session.exec(select(Lead).order_by(Lead.created_at.desc())).all()

def create_lead(session: Session, req: CreateLeadRequest) -> Lead:
  lead = Lead(**req.model_dump())
  session.add(lead)
  db.commit(session)
  session.refresh(lead)
  logger.info("Created lead %s via %s", lead.id, lead.channel)
  return lead

def update_lead(session: Session, lead_id: str, req: UpdateLeadRequest) -> Lead:
  lead = get_lead(session, lead_id)
  changes = req.model_dump(exclude_unset=True)
  new_status = changes.pop("status", None)
  if new_status and new_status != lead.status:
    if lead.status not in LeadStatus.OPEN:
      raise ValidationFailed(f"Lead {lead_id} is {lead.status} and can no longer change status")
    lead.status = new_status
  for key, value in changes.items():
    setattr(lead, key, value)
  session.add(lead)
  db.commit(session)
  session.refresh(lead)
  return lead


# --------- Promo codes ---------
def evaluate_promo(session: Session, code: str, base: int, today: Optional[date] = None) -> Tuple[PromoCode, int]:
  """Resolve a promo code into a discount on `base`; raises InvalidPromo when unusable."""
  today = today or date.today()
  promo = session.exec(select(PromoCode).where(PromoCode.code == code.strip().upper())).first()
  if not promo:
    raise InvalidPromo(f"Promo code {code} does not exist", code=code)
  if not promo.is_active:
    raise InvalidPromo(f"Promo code {promo.code} is inactive", code=promo.code)
  if promo.expiry_date and promo.expiry_date < today:
    raise InvalidPromo(f"Promo code {promo.code} expired on {promo.expiry_date}", code=promo.code)
  if promo.max_usage is not None and promo.usage_count >= promo.max_usage:
    raise InvalidPromo(f"Promo code {promo.code} reached its usage limit", code=promo.code)

  if promo.discount_type == "percentage":
    discount = round(base * promo.discount_value / 100)
  else:
    discount = promo.discount_value
  return promo, projects.ensure_discount(base, discount)


def _apply_promo(session: Session, code: Optional[str], base: int, warnings: List[str]) -> Tuple[Optional[PromoCode], int]:
  if not code:
    return None, 0
  try:
    return evaluate_promo(session, code, base)
  except InvalidPromo as exc:
    logger.info("Promo skipped: %s", exc.detail)
    warnings.append(exc.detail)
    return None, 0

def _count_promo_use(session: Session, promo: Optional[PromoCode]) -> None:
  if not promo:
    return
  promo.usage_count += 1
  session.add(promo)
  db.commit(session)


# --------- Shared steps ---------
def _initial_status(session: Session, status: Optional[str], strict: bool = True) -> Tuple[str, int]:
  names = [s.name for s in workflow.list_statuses(session)]
  if not strict and status not in names:
    status = None
  status = status or names[0]
  if status not in names:
    raise ValidationFailed(f"Unknown status '{status}'")
  return status, workflow.progress_for(status, names)


def _record_deposit(
  session: Session,
  project: Project,
  amount: int,
  source_id: str,
  lead_id: Optional[str],
) -> Transaction:
  """Deposit step; a failure leaves the committed client and project in place."""
  try:
    with db.locked_sources([source_id]):
      try:
        txn = funding.post(
          session,
          source_id,
          amount,
          TransactionKind.INCOME,
          DEPOSIT_CATEGORY,
          f"Deposit {project.project_name}",
          project_id=project.id,
          method="Transfer",
        )
        project.amount_paid += amount
        projects.refresh_payment_status(project)
        session.add(project)
        db.commit(session)
      except Exception:
        session.rollback()
        raise
  except LedgerError as exc:
    logger.error("Deposit for project %s failed after commit of client/project: %s", project.id, exc.detail)
    raise DepositFailed(exc, client_id=project.client_id, project_id=project.id, lead_id=lead_id) from exc
  session.refresh(txn)
  session.refresh(project)
  logger.info("Recorded deposit %s on %s into %s", amount, project.id, source_id)
  return txn


def _new_client(req) -> Client:
  return Client(
    name=req.client_name,
    email=req.email,
    phone=req.phone,
    whatsapp=req.whatsapp,
  )


# --------- Direct creation ---------
def create_project(session: Session, req: CreateProjectRequest) -> Project:
  client = None
  if req.client_id:
    client = session.get(Client, req.client_id)
    if not client:
      raise NotFound(f"Client {req.client_id} not found")
  package, price, add_ons = projects.resolve_pricing(session, req.package_id, req.unit_price, req.add_on_ids)
  add_ons_total = sum(a["price"] for a in add_ons)
  discount = projects.ensure_discount(price + add_ons_total, req.discount_amount)
  status, progress = _initial_status(session, req.status)

  project = Project(
    client_id=client.id if client else None,
    project_name=req.project_name,
    client_name=client.name if client else (req.client_name or ""),
    project_type=req.project_type,
    package_id=package.id if package else None,
    package_name=package.name if package else "",
    package_price=price,
    add_ons=add_ons,
    add_ons_total=add_ons_total,
    discount_amount=discount,
    event_date=req.event_date,
    location=req.location,
    notes=req.notes,
    status=status,
    progress=progress,
    total_cost=price + add_ons_total - discount,
  )
  projects.refresh_payment_status(project)
  session.add(project)
  try:
    session.flush()
    for item in req.cost_items:
      costs.add_item(session, project.id, item, commit=False)
    if req.team:
      team_ledger.assign_team(session, project.id, AssignTeamRequest(members=req.team), commit=False)
    db.commit(session)
  except Exception:
    session.rollback()
    raise
  session.refresh(project)
  logger.info("Created project %s (%s) total %s", project.id, project.project_name, project.total_cost)
  return project


# --------- Lead conversion ---------
def convert_lead(session: Session, lead_id: str, req: ConvertLeadRequest, now: Optional[datetime] = None) -> ConversionResult:
  """Lead -> Client + Project (+ deposit), in that order.

  Inputs are validated before the first write. Steps commit one by one; a
  failed deposit raises DepositFailed without undoing the lead, client and
  project. Promo usage is counted only after everything else succeeded.
  """
  now = now or datetime.utcnow()
  lead = get_lead(session, lead_id)
  if lead.status not in LeadStatus.OPEN:
    raise ValidationFailed(f"Lead {lead_id} is {lead.status} and cannot be converted")
  if not req.package_id:
    raise PackageRequired()
  if req.deposit > 0 and not req.deposit_source_id:
    raise ValidationFailed("A destination source is required for the deposit")
  if req.deposit_source_id:
    funding.get_source(session, req.deposit_source_id)

  warnings: List[str] = []
  package, price, add_ons = projects.resolve_pricing(session, req.package_id, req.unit_price, req.add_on_ids)
  add_ons_total = sum(a["price"] for a in add_ons)
  promo, discount = _apply_promo(session, req.promo_code, price + add_ons_total, warnings)
  status, progress = _initial_status(session, CONVERTED_PROJECT_STATUS, strict=False)

  # (1) lead first
  lead.status = LeadStatus.CONVERTED
  lead.converted_at = now
  session.add(lead)
  db.commit(session)

  # (2) client
  client_name = req.client_name or lead.name
  client = Client(name=client_name, email=req.email, phone=req.phone, whatsapp=req.whatsapp or lead.whatsapp)
  session.add(client)
  db.commit(session)
  lead.converted_client_id = client.id
  lead.notes = f"Converted to client {client.id}"
  session.add(lead)

  # (3) project
  project = Project(
    client_id=client.id,
    project_name=f"Event {client_name}",
    client_name=client_name,
    project_type=req.project_type,
    package_id=package.id,
    package_name=package.name,
    package_price=price,
    add_ons=add_ons,
    add_ons_total=add_ons_total,
    discount_amount=discount,
    promo_code_id=promo.id if promo else None,
    event_date=req.event_date,
    location=req.location or lead.location,
    notes=req.notes,
    status=status,
    progress=progress,
    total_cost=price + add_ons_total - discount,
    deposit_proof_url=req.deposit_proof_url,
  )
  projects.refresh_payment_status(project)
  session.add(project)
  db.commit(session)
  session.refresh(project)
  logger.info("Lead %s converted: client %s, project %s", lead_id, client.id, project.id)

  # (4) deposit
  txn = None
  if req.deposit > 0:
    txn = _record_deposit(session, project, req.deposit, req.deposit_source_id, lead.id)

  # (5) promo usage
  _count_promo_use(session, promo)

  session.refresh(lead)
  session.refresh(client)
  session.refresh(project)
  return ConversionResult(lead=lead, client=client, project=project, deposit_transaction=txn, warnings=warnings)


# --------- Public booking ---------
def submit_booking(
  session: Session,
  req: PublicBookingRequest,
  proof: Optional[Tuple[str, bytes]] = None,
  uploader=None,
  now: Optional[datetime] = None,
) -> ConversionResult:
  """Publicly submitted booking; the project waits behind the booking gate."""
  now = now or datetime.utcnow()
  if not req.package_id:
    raise PackageRequired()
  source_id = DEFAULT_FUNDING_SOURCE_ID
  if req.deposit > 0:
    if not source_id:
      raise ValidationFailed("Online payments are not configured")
    funding.get_source(session, source_id)
  lead = None
  if req.lead_id:
    lead = get_lead(session, req.lead_id)
    if lead.status not in LeadStatus.OPEN:
      raise ValidationFailed(f"Lead {lead.id} is {lead.status} and cannot be converted")

  warnings: List[str] = []
  package, price, add_ons = projects.resolve_pricing(session, req.package_id, req.unit_price, req.add_on_ids)
  add_ons_total = sum(a["price"] for a in add_ons)
  promo, discount = _apply_promo(session, req.promo_code, price + add_ons_total, warnings)
  status, progress = _initial_status(session, CONVERTED_PROJECT_STATUS, strict=False)

  proof_url = None
  if proof is not None:
    if uploader is None:
      raise ValidationFailed("Evidence upload is not available")
    proof_url = uploader.upload(*proof)

  client = _new_client(req)
  session.add(client)
  db.commit(session)

  notes = f"Deposit reference: {req.payment_ref}" if req.payment_ref else None
  project = Project(
    client_id=client.id,
    project_name=f"Event {client.name} ({package.name})",
    client_name=client.name,
    project_type=req.project_type,
    package_id=package.id,
    package_name=package.name,
    package_price=price,
    add_ons=add_ons,
    add_ons_total=add_ons_total,
    discount_amount=discount,
    promo_code_id=promo.id if promo else None,
    event_date=req.event_date,
    location=req.location,
    notes=notes,
    status=status,
    progress=progress,
    total_cost=price + add_ons_total - discount,
    booking_status=BookingStatus.NEW,
    deposit_proof_url=proof_url,
  )
  projects.refresh_payment_status(project)
  session.add(project)

  if lead is None:
    lead = Lead(name=client.name, channel="Website", location=req.location, whatsapp=req.whatsapp or req.phone)
  lead.status = LeadStatus.CONVERTED
  lead.converted_at = now
  lead.converted_client_id = client.id
  lead.notes = f"Converted from public booking, client {client.id}"
  session.add(lead)
  db.commit(session)
  session.refresh(project)
  logger.info("Public booking %s received for client %s", project.id, client.id)

  txn = None
  if req.deposit > 0:
    txn = _record_deposit(session, project, req.deposit, source_id, lead.id)

  _count_promo_use(session, promo)

  session.refresh(lead)
  session.refresh(client)
  session.refresh(project)
  return ConversionResult(lead=lead, client=client, project=project, deposit_transaction=txn, warnings=warnings)
