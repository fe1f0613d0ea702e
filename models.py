# models.py
from typing import Optional, List, Dict, Any
from datetime import date, datetime
from uuid import uuid4
from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field


def new_id(prefix: str) -> str:
  return f"{prefix}-{uuid4().hex[:10].upper()}"


class SourceKind:
  CARD = "card"
  POCKET = "pocket"


class PaymentState:
  UNPAID = "Unpaid"
  PAID = "Paid"


class CostCategory:
  PRINTING = "printing"
  TRANSPORT = "transport"
  CUSTOM = "custom"

  ALL = ("printing", "transport", "custom")


class TransactionKind:
  INCOME = "Income"
  EXPENSE = "Expense"


class ProjectPaymentStatus:
  UNPAID = "Unpaid"
  PARTIALLY_PAID = "PartiallyPaid"
  PAID = "Paid"


class LeadStatus:
  DISCUSSION = "Discussion"
  FOLLOW_UP = "FollowUp"
  CONVERTED = "Converted"
  REJECTED = "Rejected"

  OPEN = ("Discussion", "FollowUp")


class BookingStatus:
  NEW = "BookingNew"
  CONFIRMED = "BookingConfirmed"
  REJECTED = "BookingRejected"


class FundingSource(SQLModel, table=True):
  id: str = Field(default_factory=lambda: new_id("SRC"), primary_key=True, index=True)
  label: str
  kind: str = SourceKind.CARD  # card|pocket
  balance: int = 0
  opening_balance: int = 0
  is_active: bool = True
  created_at: datetime = Field(default_factory=datetime.utcnow)


class Package(SQLModel, table=True):
  id: str = Field(default_factory=lambda: new_id("PKG"), primary_key=True, index=True)
  name: str
  category: str = ""
  price: int
  # [{"name": "Album 20x30", "price": 750000}]
  physical_items: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
  is_active: bool = True


class AddOn(SQLModel, table=True):
  id: str = Field(default_factory=lambda: new_id("ADD"), primary_key=True, index=True)
  name: str
  price: int
  is_active: bool = True


class PromoCode(SQLModel, table=True):
  id: str = Field(default_factory=lambda: new_id("PROMO"), primary_key=True, index=True)
  code: str = Field(index=True, unique=True)
  discount_type: str = "percentage"  # percentage|fixed
  discount_value: int
  is_active: bool = True
  usage_count: int = 0
  max_usage: Optional[int] = None
  expiry_date: Optional[date] = None


class TeamMember(SQLModel, table=True):
  id: str = Field(default_factory=lambda: new_id("TM"), primary_key=True, index=True)
  name: str
  role: str = "Photographer"
  standard_fee: int = 0
  is_active: bool = True


class StatusDefinition(SQLModel, table=True):
  name: str = Field(primary_key=True)
  position: int = 0
  color: str = "#64748b"
  # [{"name": "Album layout", "note": "..."}]
  sub_statuses: List[Dict[str, str]] = Field(default_factory=list, sa_column=Column(JSON))


class Lead(SQLModel, table=True):
  id: str = Field(default_factory=lambda: new_id("LEAD"), primary_key=True, index=True)
  name: str
  channel: str = "WhatsApp"
  location: Optional[str] = None
  whatsapp: Optional[str] = None
  notes: Optional[str] = None
  status: str = LeadStatus.DISCUSSION  # Discussion|FollowUp|Converted|Rejected
  converted_client_id: Optional[str] = None
  converted_at: Optional[datetime] = None
  created_at: datetime = Field(default_factory=datetime.utcnow)


class Client(SQLModel, table=True):
  id: str = Field(default_factory=lambda: new_id("CLI"), primary_key=True, index=True)
  name: str
  email: str = ""
  phone: str = ""
  whatsapp: Optional[str] = None
  status: str = "Active"  # Prospect|Active|Inactive|Lost
  client_type: str = "Direct"  # Direct|Vendor
  since: date = Field(default_factory=date.today)
  portal_access_id: str = Field(default_factory=lambda: uuid4().hex)


class Project(SQLModel, table=True):
  id: str = Field(default_factory=lambda: new_id("PRJ"), primary_key=True, index=True)
  client_id: Optional[str] = Field(default=None, foreign_key="client.id", index=True)
  project_name: str
  client_name: str = ""
  project_type: str = ""
  package_id: Optional[str] = Field(default=None, foreign_key="package.id")
  package_name: str = ""
  package_price: int = 0
  add_ons: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
  add_ons_total: int = 0
  discount_amount: int = 0
  promo_code_id: Optional[str] = Field(default=None, foreign_key="promocode.id")
  event_date: Optional[date] = None
  location: Optional[str] = None
  notes: Optional[str] = None

  status: str = "Preparation"
  progress: int = 0
  active_sub_statuses: List[str] = Field(default_factory=list, sa_column=Column(JSON))
  confirmed_sub_statuses: List[str] = Field(default_factory=list, sa_column=Column(JSON))
  # Per-project checklist override; None falls back to the status template
  custom_sub_statuses: Optional[List[Dict[str, str]]] = Field(default=None, sa_column=Column(JSON))
  sub_status_sent_at: Dict[str, str] = Field(default_factory=dict, sa_column=Column(JSON))
  client_sub_status_notes: Dict[str, str] = Field(default_factory=dict, sa_column=Column(JSON))

  total_cost: int = 0
  amount_paid: int = 0
  payment_status: str = ProjectPaymentStatus.UNPAID

  booking_status: Optional[str] = None  # BookingNew|BookingConfirmed|BookingRejected
  rejection_reason: Optional[str] = None
  deposit_proof_url: Optional[str] = None
  created_at: datetime = Field(default_factory=datetime.utcnow)


class CostLineItem(SQLModel, table=True):
  id: str = Field(default_factory=lambda: new_id("COST"), primary_key=True, index=True)
  project_id: str = Field(foreign_key="project.id", index=True)
  label: str
  amount: int
  category: str = CostCategory.CUSTOM  # printing|transport|custom
  status: str = PaymentState.UNPAID  # Unpaid|Paid
  paid_at: Optional[datetime] = None
  funding_source_id: Optional[str] = Field(default=None, foreign_key="fundingsource.id")
  # Lump sum owned by the recalculator, one per project+category
  booked: bool = False


class Transaction(SQLModel, table=True):
  __tablename__ = "ledger_transaction"

  id: str = Field(default_factory=lambda: new_id("TRN"), primary_key=True, index=True)
  posted_on: date = Field(default_factory=date.today)
  description: str
  amount: int  # signed: income > 0, expense < 0
  kind: str = TransactionKind.EXPENSE  # Income|Expense
  category: str
  method: str = "System"
  project_id: Optional[str] = Field(default=None, foreign_key="project.id", index=True)
  funding_source_id: Optional[str] = Field(default=None, foreign_key="fundingsource.id", index=True)
  cost_item_id: Optional[str] = Field(default=None, foreign_key="costlineitem.id")
  team_payment_id: Optional[str] = Field(default=None, foreign_key="teampaymentrecord.id")
  created_at: datetime = Field(default_factory=datetime.utcnow)


class TeamAssignment(SQLModel, table=True):
  id: Optional[int] = Field(default=None, primary_key=True)
  project_id: str = Field(foreign_key="project.id", index=True)
  member_id: str = Field(foreign_key="teammember.id", index=True)
  role: str = ""
  fee: int = 0
  reward: int = 0
  sub_job: Optional[str] = None


class TeamPaymentRecord(SQLModel, table=True):
  id: str = Field(primary_key=True, index=True)  # TPP-{project}-{member}
  project_id: str = Field(foreign_key="project.id", index=True)
  member_id: str = Field(foreign_key="teammember.id", index=True)
  member_name: str = ""
  fee: int = 0
  reward: int = 0
  status: str = PaymentState.UNPAID  # Unpaid|Paid
  paid_at: Optional[datetime] = None
  funding_source_id: Optional[str] = Field(default=None, foreign_key="fundingsource.id")
  orphaned: bool = False

  @property
  def amount(self) -> int:
    return self.fee + self.reward
