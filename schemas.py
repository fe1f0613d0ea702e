"""
Request and response types for the ledger API.

Each operation takes its own tagged request model; the services accept these
directly so the HTTP layer and tests share one validated shape.
"""
from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from models import (
  Client, CostLineItem, Lead, Project, TeamPaymentRecord, Transaction,
)

Category = Literal["printing", "transport", "custom"]


# --------- Funding ---------
class CreateSourceRequest(BaseModel):
  label: str
  kind: Literal["card", "pocket"] = "card"
  opening_balance: int = Field(default=0, ge=0)


class TransferRequest(BaseModel):
  from_source_id: str
  to_source_id: str
  amount: int = Field(gt=0)
  description: Optional[str] = None


class ReconcileView(BaseModel):
  source_id: str
  opening_balance: int
  transactions_total: int
  expected_balance: int
  balance: int
  consistent: bool


# --------- Costs & settlement ---------
class AddCostItemRequest(BaseModel):
  label: str
  amount: int = Field(ge=0)
  category: Category = "custom"


class EditCostItemRequest(BaseModel):
  label: Optional[str] = None
  amount: Optional[int] = Field(default=None, ge=0)
  category: Optional[Category] = None


class SettleRequest(BaseModel):
  source_id: str


class SettleBatchRequest(BaseModel):
  item_ids: List[str] = Field(min_length=1)
  source_id: str


class EditCostRequest(BaseModel):
  # New lump sum per category; None leaves the category untouched
  printing: Optional[int] = Field(default=None, ge=0)
  transport: Optional[int] = Field(default=None, ge=0)
  custom: Optional[int] = Field(default=None, ge=0)
  source_id: Optional[str] = None


# --------- Workflow ---------
class SubStatusIn(BaseModel):
  name: str
  note: str = ""


class StatusIn(BaseModel):
  name: str
  color: str = "#64748b"
  sub_statuses: List[SubStatusIn] = Field(default_factory=list)


class StatusConfigRequest(BaseModel):
  statuses: List[StatusIn] = Field(min_length=1)


class StatusChangeRequest(BaseModel):
  status: str


class SubStatusOverrideRequest(BaseModel):
  sub_statuses: List[SubStatusIn]


class ToggleSubStatusRequest(BaseModel):
  name: str
  active: bool = True


class ConfirmationRequest(BaseModel):
  sub_status: str
  recipient: str


class ClientConfirmationRequest(BaseModel):
  sub_status: str
  note: Optional[str] = None


class ChecklistEntry(BaseModel):
  name: str
  note: str = ""
  active: bool = False
  confirmed: bool = False
  sent_at: Optional[datetime] = None
  client_note: Optional[str] = None
  needs_follow_up: bool = False


class OutboundMessage(BaseModel):
  kind: Literal["confirmation", "follow_up"] = "confirmation"
  recipient: str
  project_id: str
  project_name: str
  sub_status: str
  portal_access_id: Optional[str] = None
  created_at: datetime = Field(default_factory=datetime.utcnow)


class ConfirmationView(BaseModel):
  project: Project
  message: OutboundMessage


# --------- Team ---------
class TeamAssignmentIn(BaseModel):
  member_id: str
  fee: Optional[int] = Field(default=None, ge=0)
  reward: int = Field(default=0, ge=0)
  role: Optional[str] = None
  sub_job: Optional[str] = None


class AssignTeamRequest(BaseModel):
  members: List[TeamAssignmentIn]


class TeamPaymentKey(BaseModel):
  project_id: str
  member_id: str


class TeamSettleBatchRequest(BaseModel):
  keys: List[TeamPaymentKey] = Field(min_length=1)
  source_id: str


# --------- Projects ---------
class CreateProjectRequest(BaseModel):
  project_name: str
  client_id: Optional[str] = None
  client_name: Optional[str] = None
  project_type: str = ""
  package_id: Optional[str] = None
  unit_price: Optional[int] = Field(default=None, ge=0)
  add_on_ids: List[str] = Field(default_factory=list)
  discount_amount: int = Field(default=0, ge=0)
  event_date: Optional[date] = None
  location: Optional[str] = None
  notes: Optional[str] = None
  status: Optional[str] = None
  cost_items: List[AddCostItemRequest] = Field(default_factory=list)
  team: List[TeamAssignmentIn] = Field(default_factory=list)


class RecordPaymentRequest(BaseModel):
  amount: int = Field(gt=0)
  source_id: str
  description: Optional[str] = None


class BookingDecisionRequest(BaseModel):
  reason: Optional[str] = None


class ProjectView(BaseModel):
  project: Project
  cost_items: List[CostLineItem]
  team_payments: List[TeamPaymentRecord]
  transactions: List[Transaction]
  checklist: List[ChecklistEntry]


# --------- Leads ---------
class CreateLeadRequest(BaseModel):
  name: str
  channel: str = "WhatsApp"
  location: Optional[str] = None
  whatsapp: Optional[str] = None
  notes: Optional[str] = None
  status: Literal["Discussion", "FollowUp"] = "Discussion"


class UpdateLeadRequest(BaseModel):
  name: Optional[str] = None
  channel: Optional[str] = None
  location: Optional[str] = None
  whatsapp: Optional[str] = None
  notes: Optional[str] = None
  status: Optional[Literal["Discussion", "FollowUp", "Rejected"]] = None


class ConvertLeadRequest(BaseModel):
  client_name: Optional[str] = None
  email: str = ""
  phone: str = ""
  whatsapp: Optional[str] = None
  project_type: str = ""
  event_date: Optional[date] = None
  location: Optional[str] = None
  notes: Optional[str] = None
  package_id: Optional[str] = None
  unit_price: Optional[int] = Field(default=None, ge=0)
  add_on_ids: List[str] = Field(default_factory=list)
  promo_code: Optional[str] = None
  deposit: int = Field(default=0, ge=0)
  deposit_source_id: Optional[str] = None
  deposit_proof_url: Optional[str] = None


class PublicBookingRequest(BaseModel):
  client_name: str
  email: str = ""
  phone: str = ""
  whatsapp: Optional[str] = None
  project_type: str = ""
  event_date: Optional[date] = None
  location: Optional[str] = None
  package_id: Optional[str] = None
  unit_price: Optional[int] = Field(default=None, ge=0)
  add_on_ids: List[str] = Field(default_factory=list)
  promo_code: Optional[str] = None
  deposit: int = Field(default=0, ge=0)
  payment_ref: Optional[str] = None
  lead_id: Optional[str] = None


class ConversionResult(BaseModel):
  lead: Lead
  client: Client
  project: Project
  deposit_transaction: Optional[Transaction] = None
  warnings: List[str] = Field(default_factory=list)


class SummaryView(BaseModel):
  project_id: str
  summary: str
