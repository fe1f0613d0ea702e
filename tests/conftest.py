"""
Shared fixtures: an in-memory SQLite engine with every table, a session on it,
catalog seed rows, and a TestClient whose collaborators are in-memory fakes.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

import db
import funding
import workflow
from collaborators import get_dispatcher, get_summarizer, get_uploader
from errors import UploadFailed
from models import AddOn, Lead, Package, Project, PromoCode, TeamMember


@pytest.fixture
def engine(monkeypatch):
  engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
  )
  db.init_db(engine)
  monkeypatch.setattr(db, "engine", engine)
  yield engine
  engine.dispose()


@pytest.fixture
def session(engine):
  with Session(engine) as session:
    workflow.ensure_default_statuses(session)
    yield session


def make_source(session, label="BCA", balance=1_000_000, kind="card"):
  source = funding.create_source(session, label, kind, balance)
  session.commit()
  session.refresh(source)
  return source


def make_project(session, name="Wedding Andi", price=0, package_id=None, status="Confirmed", **fields):
  project = Project(
    project_name=name, package_price=price, total_cost=price, package_id=package_id, status=status, **fields
  )
  session.add(project)
  session.commit()
  session.refresh(project)
  return project


@pytest.fixture
def catalog(session):
  """Packages, add-ons, promo codes and team members used across tests."""
  rows = {
    "package": Package(
      id="PKG-GOLD", name="Wedding Gold", price=5_000_000,
      physical_items=[{"name": "Album 20x30", "price": 750_000}, {"name": "Canvas", "price": 250_000}],
    ),
    "bare_package": Package(id="PKG-BARE", name="Portrait", price=900_000),
    "drone": AddOn(id="ADD-DRONE", name="Drone", price=1_000_000),
    "promo": PromoCode(code="HEMAT10", discount_type="percentage", discount_value=10, max_usage=5),
    "expired": PromoCode(code="OLD", discount_type="fixed", discount_value=100_000, is_active=False),
    "raka": TeamMember(id="TM-RAKA", name="Raka", role="Photographer", standard_fee=750_000),
    "dinda": TeamMember(id="TM-DINDA", name="Dinda", role="Videographer", standard_fee=850_000),
  }
  session.add_all(rows.values())
  session.commit()
  for row in rows.values():
    session.refresh(row)
  return rows


@pytest.fixture
def lead(session):
  lead = Lead(name="Siti", channel="Instagram", whatsapp="0812")
  session.add(lead)
  session.commit()
  session.refresh(lead)
  return lead


class FakeDispatcher:
  def __init__(self):
    self.sent = []

  def send(self, message):
    self.sent.append(message)
    return True


class FakeUploader:
  def __init__(self, fail=False):
    self.fail = fail
    self.uploads = []

  def upload(self, filename, content):
    if self.fail:
      raise UploadFailed("Evidence upload error: 500")
    self.uploads.append((filename, content))
    return f"https://evidence.test/{filename}"


class FakeSummarizer:
  async def summarize(self, aggregate):
    return f"{aggregate['project']['project_name']} is {aggregate['project']['status']}"


@pytest.fixture
def dispatcher():
  return FakeDispatcher()


@pytest.fixture
def uploader():
  return FakeUploader()


@pytest.fixture
def client(engine, session, dispatcher, uploader):
  from main import app

  app.dependency_overrides[db.get_session] = lambda: session
  app.dependency_overrides[get_dispatcher] = lambda: dispatcher
  app.dependency_overrides[get_uploader] = lambda: uploader
  app.dependency_overrides[get_summarizer] = lambda: FakeSummarizer()
  with TestClient(app) as c:
    yield c
  app.dependency_overrides.clear()
