# booking.py
import logging
from typing import Optional

from sqlmodel import Session

import db
import projects
from errors import InvalidTransition, ValidationFailed
from models import BookingStatus, Project

logger = logging.getLogger(__name__)


def _decide(session: Session, project_id: str, outcome: str, reason: Optional[str] = None) -> Project:
  project = projects.get_project(session, project_id)
  if project.booking_status is None:
    raise ValidationFailed(f"Project {project_id} did not come from a public booking")
  if project.booking_status != BookingStatus.NEW:
    raise InvalidTransition(
      f"Booking for {project_id} is already {project.booking_status}",
      booking_status=project.booking_status,
    )
  project.booking_status = outcome
  if outcome == BookingStatus.REJECTED:
    project.rejection_reason = reason
  session.add(project)
  db.commit(session)
  session.refresh(project)
  logger.info("Booking %s -> %s", project_id, outcome)
  return project


def confirm_booking(session: Session, project_id: str) -> Project:
  return _decide(session, project_id, BookingStatus.CONFIRMED)

def reject_booking(session: Session, project_id: str, reason: Optional[str] = None) -> Project:
  return _decide(session, project_id, BookingStatus.REJECTED, reason)
