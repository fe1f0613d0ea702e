# project_route.py
from typing import List, Optional
from fastapi import APIRouter, BackgroundTasks, Depends
from sqlmodel import Session

import booking
import conversion
import costs
import projects
import team_ledger
import workflow
from collaborators import MessageDispatcher, Summarizer, get_dispatcher, get_summarizer
from db import get_session
from models import Project, StatusDefinition, TeamPaymentRecord, Transaction
from schemas import (
  AssignTeamRequest, BookingDecisionRequest, ChecklistEntry, ClientConfirmationRequest,
  ConfirmationRequest, ConfirmationView, CreateProjectRequest, ProjectView, RecordPaymentRequest,
  StatusChangeRequest, StatusConfigRequest, SubStatusOverrideRequest, SummaryView,
  ToggleSubStatusRequest,
)
from search import match

router = APIRouter(prefix="/api", tags=["projects"])

def _view(session: Session, project: Project) -> ProjectView:
  return ProjectView(
    project=project,
    cost_items=costs.list_items(session, project.id),
    team_payments=team_ledger.list_records(session, project.id),
    transactions=projects.project_transactions(session, project.id),
    checklist=workflow.checklist(session, project),
  )


# --------- Projects ---------
@router.get("/projects", response_model=List[Project])
def list_projects(
  q: Optional[str] = None,
  status: Optional[str] = None,
  session: Session = Depends(get_session),
):
  rows = projects.list_projects(session)
  if status:
    rows = [r for r in rows if r.status == status]
  if not q:
    return rows
  return [r for r in rows if match(q, r.id, r.project_name, r.client_name, r.project_type, r.location)]

@router.post("/projects", response_model=ProjectView)
def create_project(req: CreateProjectRequest, session: Session = Depends(get_session)):
  project = conversion.create_project(session, req)
  return _view(session, project)

@router.get("/projects/{project_id}", response_model=ProjectView)
def get_project(project_id: str, session: Session = Depends(get_session)):
  return _view(session, projects.get_project(session, project_id))

@router.delete("/projects/{project_id}")
def delete_project(project_id: str, session: Session = Depends(get_session)):
  projects.delete_project(session, project_id)
  return {"ok": True, "project_id": project_id}

@router.post("/projects/{project_id}/payments", response_model=Transaction)
def record_payment(project_id: str, req: RecordPaymentRequest, session: Session = Depends(get_session)):
  return projects.record_payment(session, project_id, req)


# --------- Workflow ---------
@router.post("/projects/{project_id}/status", response_model=ProjectView)
def change_status(project_id: str, req: StatusChangeRequest, session: Session = Depends(get_session)):
  return _view(session, workflow.set_status(session, project_id, req.status))

@router.put("/projects/{project_id}/sub-statuses", response_model=ProjectView)
def override_sub_statuses(project_id: str, req: SubStatusOverrideRequest, session: Session = Depends(get_session)):
  return _view(session, workflow.override_sub_statuses(session, project_id, req))

@router.post("/projects/{project_id}/sub-statuses/toggle", response_model=ProjectView)
def toggle_sub_status(project_id: str, req: ToggleSubStatusRequest, session: Session = Depends(get_session)):
  return _view(session, workflow.toggle_sub_status(session, project_id, req))

@router.post("/projects/{project_id}/confirmations/request", response_model=ConfirmationView)
def request_confirmation(
  project_id: str,
  req: ConfirmationRequest,
  background: BackgroundTasks,
  session: Session = Depends(get_session),
  dispatcher: MessageDispatcher = Depends(get_dispatcher),
):
  project, message = workflow.request_confirmation(session, project_id, req)
  background.add_task(dispatcher.send, message)
  return ConfirmationView(project=project, message=message)

@router.post("/projects/{project_id}/confirmations/record", response_model=ProjectView)
def record_confirmation(project_id: str, req: ClientConfirmationRequest, session: Session = Depends(get_session)):
  return _view(session, workflow.record_client_confirmation(session, project_id, req))

@router.get("/projects/{project_id}/checklist", response_model=List[ChecklistEntry])
def get_checklist(project_id: str, session: Session = Depends(get_session)):
  return workflow.checklist(session, projects.get_project(session, project_id))


# --------- Team ---------
@router.put("/projects/{project_id}/team", response_model=List[TeamPaymentRecord])
def assign_team(project_id: str, req: AssignTeamRequest, session: Session = Depends(get_session)):
  return team_ledger.assign_team(session, project_id, req)


# --------- Booking gate ---------
@router.post("/projects/{project_id}/booking/confirm", response_model=Project)
def confirm_booking(project_id: str, session: Session = Depends(get_session)):
  return booking.confirm_booking(session, project_id)

@router.post("/projects/{project_id}/booking/reject", response_model=Project)
def reject_booking(project_id: str, req: BookingDecisionRequest, session: Session = Depends(get_session)):
  return booking.reject_booking(session, project_id, req.reason)


# --------- AI summary ---------
@router.get("/projects/{project_id}/summary", response_model=SummaryView)
async def project_summary(
  project_id: str,
  session: Session = Depends(get_session),
  summarizer: Summarizer = Depends(get_summarizer),
):
  view = _view(session, projects.get_project(session, project_id))
  text = await summarizer.summarize(view.model_dump(mode="json"))
  return SummaryView(project_id=project_id, summary=text)


# --------- Status configuration ---------
@router.get("/statuses", response_model=List[StatusDefinition])
def list_statuses(session: Session = Depends(get_session)):
  return workflow.list_statuses(session)

@router.put("/statuses", response_model=List[StatusDefinition])
def configure_statuses(req: StatusConfigRequest, session: Session = Depends(get_session)):
  return workflow.configure_statuses(session, req)
