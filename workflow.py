# workflow.py
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from sqlmodel import Session, select

import db
import projects
from config import CANCELLED_STATUS, DEFAULT_STATUSES, FOLLOW_UP_HOURS, STATUS_PROGRESS
from errors import InvalidTransition, ValidationFailed
from models import Client, Project, StatusDefinition
from schemas import (
  ChecklistEntry, ClientConfirmationRequest, ConfirmationRequest, OutboundMessage,
  StatusConfigRequest, SubStatusOverrideRequest, ToggleSubStatusRequest,
)

logger = logging.getLogger(__name__)


# --------- Tenant configuration ---------
def list_statuses(session: Session) -> List[StatusDefinition]:
  rows = session.exec(select(StatusDefinition).order_by(StatusDefinition.position)).all()
  if rows:
    return rows
  return [
    StatusDefinition(name=s["name"], position=i, color=s["color"], sub_statuses=list(s["sub_statuses"]))
    for i, s in enumerate(DEFAULT_STATUSES)
  ]

def ensure_default_statuses(session: Session) -> bool:
  if session.exec(select(StatusDefinition)).first():
    return False
  for row in list_statuses(session):
    session.add(row)
  db.commit(session)
  return True

def configure_statuses(session: Session, req: StatusConfigRequest) -> List[StatusDefinition]:
  names = [s.name.strip() for s in req.statuses]
  if any(not n for n in names):
    raise ValidationFailed("Status names cannot be empty")
  if len(set(names)) != len(names):
    raise ValidationFailed("Status names must be unique")
  if CANCELLED_STATUS in names:
    raise ValidationFailed(f"{CANCELLED_STATUS} is built in and cannot be configured")

  for row in session.exec(select(StatusDefinition)).all():
    session.delete(row)
  session.flush()
  for position, status in enumerate(req.statuses):
    session.add(StatusDefinition(
      name=status.name.strip(),
      position=position,
      color=status.color,
      sub_statuses=[s.model_dump() for s in status.sub_statuses],
    ))
  db.commit(session)
  logger.info("Configured %d project statuses", len(names))
  return list_statuses(session)

def _definition(session: Session, name: str) -> Optional[StatusDefinition]:
  for row in list_statuses(session):
    if row.name == name:
      return row
  return None


def progress_for(status: str, ordered_names: List[str]) -> int:
  if status in STATUS_PROGRESS:
    return STATUS_PROGRESS[status]
  if status in ordered_names:
    return round((ordered_names.index(status) + 1) / len(ordered_names) * 100)
  return 0


def sub_status_template(session: Session, project: Project) -> List[Dict[str, str]]:
  if project.custom_sub_statuses is not None:
    return list(project.custom_sub_statuses)
  definition = _definition(session, project.status)
  return list(definition.sub_statuses) if definition else []

def _require_sub_status(session: Session, project: Project, name: str) -> None:
  if name not in {s["name"] for s in sub_status_template(session, project)}:
    raise ValidationFailed(f"'{name}' is not on the checklist of status {project.status}")


# --------- Transitions ---------
def set_status(session: Session, project_id: str, new_status: str) -> Project:
  project = projects.get_project(session, project_id)
  if new_status == project.status:
    return project
  if project.status == CANCELLED_STATUS:
    raise InvalidTransition(f"Project {project_id} is cancelled", project_id=project_id)

  names = [s.name for s in list_statuses(session)]
  if new_status != CANCELLED_STATUS and new_status not in names:
    raise ValidationFailed(f"Unknown status '{new_status}'")

  previous = project.status
  project.status = new_status
  project.progress = progress_for(new_status, names)
  project.active_sub_statuses = []
  project.custom_sub_statuses = None
  session.add(project)
  db.commit(session)
  session.refresh(project)
  logger.info("Project %s moved %s -> %s (%s%%)", project_id, previous, new_status, project.progress)
  return project


def override_sub_statuses(session: Session, project_id: str, req: SubStatusOverrideRequest) -> Project:
  project = projects.get_project(session, project_id)
  entries = [s.model_dump() for s in req.sub_statuses]
  names = {e["name"] for e in entries}
  project.custom_sub_statuses = entries
  project.active_sub_statuses = [s for s in project.active_sub_statuses if s in names]
  session.add(project)
  db.commit(session)
  session.refresh(project)
  return project

def toggle_sub_status(session: Session, project_id: str, req: ToggleSubStatusRequest) -> Project:
  project = projects.get_project(session, project_id)
  _require_sub_status(session, project, req.name)
  active = [s for s in project.active_sub_statuses if s != req.name]
  if req.active:
    active.append(req.name)
  project.active_sub_statuses = active
  session.add(project)
  db.commit(session)
  session.refresh(project)
  return project


# --------- Client confirmation ---------
def _sent_at(project: Project, name: str) -> Optional[datetime]:
  raw = (project.sub_status_sent_at or {}).get(name)
  return datetime.fromisoformat(raw) if raw else None

def needs_follow_up(project: Project, name: str, now: Optional[datetime] = None) -> bool:
  sent_at = _sent_at(project, name)
  if sent_at is None or name in (project.confirmed_sub_statuses or []):
    return False
  return (now or datetime.utcnow()) - sent_at > timedelta(hours=FOLLOW_UP_HOURS)


def request_confirmation(
  session: Session,
  project_id: str,
  req: ConfirmationRequest,
  now: Optional[datetime] = None,
) -> Tuple[Project, OutboundMessage]:
  """Stamp the request time and prepare the outbound message; status is untouched."""
  now = now or datetime.utcnow()
  project = projects.get_project(session, project_id)
  _require_sub_status(session, project, req.sub_status)

  follow_up = req.sub_status in (project.sub_status_sent_at or {})
  project.sub_status_sent_at = {**(project.sub_status_sent_at or {}), req.sub_status: now.isoformat()}
  session.add(project)
  db.commit(session)
  session.refresh(project)

  client = session.get(Client, project.client_id) if project.client_id else None
  message = OutboundMessage(
    kind="follow_up" if follow_up else "confirmation",
    recipient=req.recipient,
    project_id=project.id,
    project_name=project.project_name,
    sub_status=req.sub_status,
    portal_access_id=client.portal_access_id if client else None,
    created_at=now,
  )
  logger.info("Confirmation %s for '%s' on %s", message.kind, req.sub_status, project_id)
  return project, message


def record_client_confirmation(session: Session, project_id: str, req: ClientConfirmationRequest) -> Project:
  project = projects.get_project(session, project_id)
  confirmed = list(project.confirmed_sub_statuses or [])
  if req.sub_status not in confirmed:
    _require_sub_status(session, project, req.sub_status)
    confirmed.append(req.sub_status)
  project.confirmed_sub_statuses = confirmed
  if req.note:
    project.client_sub_status_notes = {**(project.client_sub_status_notes or {}), req.sub_status: req.note}
  session.add(project)
  db.commit(session)
  session.refresh(project)
  logger.info("Client confirmed '%s' on %s", req.sub_status, project_id)
  return project


def checklist(session: Session, project: Project, now: Optional[datetime] = None) -> List[ChecklistEntry]:
  now = now or datetime.utcnow()
  notes = project.client_sub_status_notes or {}
  return [
    ChecklistEntry(
      name=entry["name"],
      note=entry.get("note", ""),
      active=entry["name"] in (project.active_sub_statuses or []),
      confirmed=entry["name"] in (project.confirmed_sub_statuses or []),
      sent_at=_sent_at(project, entry["name"]),
      client_note=notes.get(entry["name"]),
      needs_follow_up=needs_follow_up(project, entry["name"], now),
    )
    for entry in sub_status_template(session, project)
  ]
