# errors.py
from typing import Optional


class LedgerError(Exception):
  status_code = 400
  kind = "LedgerError"

  def __init__(self, detail: str, **context):
    super().__init__(detail)
    self.detail = detail
    self.context = context

  def to_dict(self) -> dict:
    body = {"error": self.kind, "detail": self.detail}
    if self.context:
      body["context"] = self.context
    return body


class NotFound(LedgerError):
  status_code = 404
  kind = "NotFound"


class InsufficientFunds(LedgerError):
  status_code = 409
  kind = "InsufficientFunds"

  def __init__(self, source_id: str, balance: int, required: int):
    super().__init__(
      f"Funding source {source_id} holds {balance}, {required} required",
      source_id=source_id, balance=balance, required=required,
    )


class AlreadySettled(LedgerError):
  status_code = 409
  kind = "AlreadySettled"


class ItemLocked(LedgerError):
  status_code = 409
  kind = "ItemLocked"


class ValidationFailed(LedgerError):
  status_code = 422
  kind = "ValidationFailed"


class PackageRequired(ValidationFailed):
  kind = "PackageRequired"

  def __init__(self, detail: str = "A package must be selected"):
    super().__init__(detail)


class InvalidTransition(ValidationFailed):
  status_code = 409
  kind = "InvalidTransition"


class InvalidPromo(LedgerError):
  # Recovered locally: the discount is skipped and the caller gets a warning
  kind = "InvalidPromo"


class PersistenceFailure(LedgerError):
  status_code = 503
  kind = "PersistenceFailure"


class CollaboratorError(LedgerError):
  status_code = 502
  kind = "CollaboratorError"


class UploadFailed(CollaboratorError):
  kind = "UploadFailed"


class DepositFailed(LedgerError):
  """Deposit step of a conversion failed after the client and project were committed."""
  kind = "DepositFailed"

  def __init__(self, cause: LedgerError, client_id: str, project_id: str, lead_id: Optional[str] = None):
    super().__init__(
      f"Deposit not recorded ({cause.kind}: {cause.detail}); reconcile project {project_id} manually",
      cause=cause.kind, client_id=client_id, project_id=project_id, lead_id=lead_id,
    )
    self.status_code = cause.status_code
    self.cause = cause
