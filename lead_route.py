# lead_route.py
from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import ValidationError
from sqlmodel import Session, select

import conversion
import db
import funding
import workflow
from collaborators import EvidenceUploader, get_uploader
from db import get_session
from errors import ValidationFailed
from models import AddOn, FundingSource, Lead, Package, PromoCode, SourceKind, TeamMember
from schemas import ConversionResult, ConvertLeadRequest, CreateLeadRequest, PublicBookingRequest, UpdateLeadRequest
from search import match

router = APIRouter(prefix="/api", tags=["leads"])


# --------- Leads ---------
@router.get("/leads", response_model=List[Lead])
def list_leads(
  q: Optional[str] = None,
  status: Optional[str] = None,
  session: Session = Depends(get_session),
):
  rows = conversion.list_leads(session)
  if status:
    rows = [r for r in rows if r.status == status]
  if not q:
    return rows
  return [r for r in rows if match(q, r.id, r.name, r.channel, r.location, r.whatsapp)]

@router.post("/leads", response_model=Lead)
def create_lead(req: CreateLeadRequest, session: Session = Depends(get_session)):
  return conversion.create_lead(session, req)

@router.patch("/leads/{lead_id}", response_model=Lead)
def update_lead(lead_id: str, req: UpdateLeadRequest, session: Session = Depends(get_session)):
  return conversion.update_lead(session, lead_id, req)

@router.post("/leads/{lead_id}/convert", response_model=ConversionResult)
def convert_lead(lead_id: str, req: ConvertLeadRequest, session: Session = Depends(get_session)):
  return conversion.convert_lead(session, lead_id, req)


# --------- Public booking ---------
@router.post("/bookings", response_model=ConversionResult)
def submit_booking(
  payload: str = Form(...),
  proof: Optional[UploadFile] = File(None),
  session: Session = Depends(get_session),
  uploader: EvidenceUploader = Depends(get_uploader),
):
  try:
    req = PublicBookingRequest.model_validate_json(payload)
  except ValidationError as exc:
    raise ValidationFailed(f"Invalid booking payload: {exc.error_count()} error(s)", errors=exc.errors(include_url=False, include_context=False)) from exc

  evidence = None
  if proof is not None and proof.filename:
    evidence = (proof.filename, proof.file.read())
  return conversion.submit_booking(session, req, proof=evidence, uploader=uploader)


# --------- Catalog ---------
@router.get("/packages", response_model=List[Package])
def list_packages(q: Optional[str] = None, session: Session = Depends(get_session)):
  rows = session.exec(select(Package)).all()
  if not q:
    return rows
  return [r for r in rows if match(q, r.id, r.name, r.category)]

@router.post("/packages", response_model=Package)
def create_package(pkg: Package, session: Session = Depends(get_session)):
  if session.get(Package, pkg.id):
    raise HTTPException(status_code=409, detail="Package id already exists")
  session.add(pkg)
  db.commit(session)
  session.refresh(pkg)
  return pkg

@router.get("/addons", response_model=List[AddOn])
def list_addons(session: Session = Depends(get_session)):
  return session.exec(select(AddOn)).all()

@router.post("/addons", response_model=AddOn)
def create_addon(add_on: AddOn, session: Session = Depends(get_session)):
  if session.get(AddOn, add_on.id):
    raise HTTPException(status_code=409, detail="Add-on id already exists")
  session.add(add_on)
  db.commit(session)
  session.refresh(add_on)
  return add_on

@router.get("/promo-codes", response_model=List[PromoCode])
def list_promo_codes(session: Session = Depends(get_session)):
  return session.exec(select(PromoCode)).all()

@router.post("/promo-codes", response_model=PromoCode)
def create_promo_code(promo: PromoCode, session: Session = Depends(get_session)):
  promo.code = promo.code.strip().upper()
  if session.exec(select(PromoCode).where(PromoCode.code == promo.code)).first():
    raise HTTPException(status_code=409, detail="Promo code already exists")
  session.add(promo)
  db.commit(session)
  session.refresh(promo)
  return promo

@router.get("/team-members", response_model=List[TeamMember])
def list_team_members(q: Optional[str] = None, session: Session = Depends(get_session)):
  rows = session.exec(select(TeamMember)).all()
  if not q:
    return rows
  return [r for r in rows if match(q, r.id, r.name, r.role)]

@router.post("/team-members", response_model=TeamMember)
def create_team_member(member: TeamMember, session: Session = Depends(get_session)):
  if session.get(TeamMember, member.id):
    raise HTTPException(status_code=409, detail="Team member id already exists")
  session.add(member)
  db.commit(session)
  session.refresh(member)
  return member


@router.post("/seed")
def seed_if_empty(session: Session = Depends(get_session)):
  # Seed only if the catalog is empty
  workflow.ensure_default_statuses(session)
  if session.exec(select(Package)).first():
    return {"ok": True, "seeded": False}

  session.add_all([
    Package(id="PKG-WEDDING", name="Wedding Gold", category="Wedding", price=5000000,
            physical_items=[{"name": "Album 20x30", "price": 750000}, {"name": "Canvas 40x60", "price": 250000}]),
    Package(id="PKG-PREWED", name="Prewedding Outdoor", category="Prewedding", price=2500000,
            physical_items=[{"name": "Print 10R x 10", "price": 150000}]),
    Package(id="PKG-GRAD", name="Graduation Session", category="Graduation", price=900000),
  ])

  session.add_all([
    AddOn(id="ADD-DRONE", name="Drone coverage", price=1200000),
    AddOn(id="ADD-SAMEDAY", name="Same day edit", price=1500000),
  ])

  session.add_all([
    PromoCode(code="HEMAT10", discount_type="percentage", discount_value=10, max_usage=50),
    PromoCode(code="PROMO500", discount_type="fixed", discount_value=500000, expiry_date=date(2026, 12, 31)),
  ])

  session.add_all([
    TeamMember(id="TM-RAKA", name="Raka", role="Photographer", standard_fee=750000),
    TeamMember(id="TM-DINDA", name="Dinda", role="Videographer", standard_fee=850000),
    TeamMember(id="TM-YOGA", name="Yoga", role="Editor", standard_fee=400000),
  ])

  if not session.exec(select(FundingSource)).first():
    funding.create_source(session, "BCA", SourceKind.CARD, 10000000)
    funding.create_source(session, "Cash", SourceKind.POCKET, 2000000)

  db.commit(session)
  return {"ok": True, "seeded": True}
