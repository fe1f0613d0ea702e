# team_ledger.py
import logging
from datetime import datetime
from typing import List, Optional, Sequence

from sqlmodel import Session, select

import db
import projects
import settlement
from errors import NotFound, ValidationFailed
from models import PaymentState, TeamAssignment, TeamMember, TeamPaymentRecord, Transaction
from schemas import AssignTeamRequest, TeamPaymentKey

logger = logging.getLogger(__name__)


def record_id(project_id: str, member_id: str) -> str:
  return f"TPP-{project_id}-{member_id}"

def list_records(session: Session, project_id: str) -> List[TeamPaymentRecord]:
  return session.exec(
    select(TeamPaymentRecord).where(TeamPaymentRecord.project_id == project_id).order_by(TeamPaymentRecord.member_name)
  ).all()

def list_assignments(session: Session, project_id: str) -> List[TeamAssignment]:
  return session.exec(select(TeamAssignment).where(TeamAssignment.project_id == project_id)).all()

def _signature(rows) -> set:
  return {(r.member_id, r.role, r.fee, r.reward, r.sub_job) for r in rows}


def assign_team(session: Session, project_id: str, req: AssignTeamRequest, commit: bool = True) -> List[TeamPaymentRecord]:
  """Replace the project's team and regenerate its payment records.

  Records are keyed by (project, member). A removed member's unpaid record is
  dropped; a paid one stays as an orphan and is revived if the member returns.
  """
  project = projects.get_project(session, project_id)
  member_ids = [m.member_id for m in req.members]
  if len(set(member_ids)) != len(member_ids):
    raise ValidationFailed("A member can only be assigned once per project")

  assignments = []
  for entry in req.members:
    member = session.get(TeamMember, entry.member_id)
    if not member:
      raise NotFound(f"Team member {entry.member_id} not found")
    assignments.append((member, TeamAssignment(
      project_id=project.id,
      member_id=member.id,
      role=entry.role or member.role,
      fee=member.standard_fee if entry.fee is None else entry.fee,
      reward=entry.reward,
      sub_job=entry.sub_job,
    )))

  current = list_assignments(session, project_id)
  if _signature(current) == _signature(a for _, a in assignments):
    return list_records(session, project_id)

  for row in current:
    session.delete(row)
  session.flush()

  records = {r.member_id: r for r in list_records(session, project_id)}
  for member, assignment in assignments:
    session.add(assignment)
    record = records.pop(member.id, None)
    if record is None:
      record = TeamPaymentRecord(id=record_id(project.id, member.id), project_id=project.id, member_id=member.id)
    elif record.status == PaymentState.PAID:
      record.orphaned = False
      session.add(record)
      continue
    record.member_name = member.name
    record.fee = assignment.fee
    record.reward = assignment.reward
    record.orphaned = False
    session.add(record)

  orphaned = 0
  for record in records.values():
    if record.status == PaymentState.PAID:
      record.orphaned = True
      session.add(record)
      orphaned += 1
    else:
      session.delete(record)

  if commit:
    db.commit(session)
  logger.info(
    "Team of %s set to %d member(s), %d paid record(s) orphaned",
    project_id, len(assignments), orphaned,
  )
  return list_records(session, project_id)


def _get_record(session: Session, project_id: str, member_id: str) -> TeamPaymentRecord:
  record = session.get(TeamPaymentRecord, record_id(project_id, member_id))
  if not record:
    raise NotFound(f"No payment record for member {member_id} on project {project_id}")
  return record

def settle_member(
  session: Session,
  project_id: str,
  member_id: str,
  source_id: str,
  now: Optional[datetime] = None,
) -> Transaction:
  record = _get_record(session, project_id, member_id)
  return settlement.settle_payables(session, [record], source_id, now)[0]

def settle_batch(
  session: Session,
  keys: Sequence[TeamPaymentKey],
  source_id: str,
  now: Optional[datetime] = None,
) -> List[Transaction]:
  ids = [(k.project_id, k.member_id) for k in keys]
  if len(set(ids)) != len(ids):
    raise ValidationFailed("Duplicate team payment keys in batch")
  records = [_get_record(session, p, m) for p, m in ids]
  return settlement.settle_payables(session, records, source_id, now)
