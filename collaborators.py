# collaborators.py
import json
import logging
from typing import Any, Dict

import httpx

from config import (
  COLLABORATOR_TIMEOUT, EVIDENCE_UPLOAD_URL, MESSAGING_URL, OPENROUTER_API_KEY, OPENROUTER_MODEL,
)
from errors import CollaboratorError, UploadFailed
from schemas import OutboundMessage

logger = logging.getLogger(__name__)


class MessageDispatcher:
  """Fire-and-forget delivery of prepared messages. Never raises."""

  def __init__(self, url: str = MESSAGING_URL, timeout: float = COLLABORATOR_TIMEOUT):
    self.url = url
    self.timeout = timeout

  def send(self, message: OutboundMessage) -> bool:
    if not self.url:
      logger.info("Messaging disabled, %s for %s not sent", message.kind, message.recipient)
      return False
    try:
      with httpx.Client(timeout=self.timeout) as client:
        r = client.post(self.url, json=message.model_dump(mode="json"))
      if r.status_code >= 400:
        logger.warning("Messaging rejected %s: %s %s", message.project_id, r.status_code, r.text[:200])
        return False
    except httpx.HTTPError as exc:
      logger.warning("Messaging failed for %s: %s", message.project_id, exc)
      return False
    return True


class EvidenceUploader:
  def __init__(self, url: str = EVIDENCE_UPLOAD_URL, timeout: float = COLLABORATOR_TIMEOUT):
    self.url = url
    self.timeout = timeout

  def upload(self, filename: str, content: bytes) -> str:
    if not self.url:
      raise UploadFailed("Evidence upload is not configured")
    try:
      with httpx.Client(timeout=self.timeout) as client:
        r = client.post(self.url, files={"file": (filename, content)})
    except httpx.HTTPError as exc:
      raise UploadFailed(f"Evidence upload failed: {exc}") from exc
    if r.status_code >= 400:
      raise UploadFailed(f"Evidence upload error: {r.status_code}")
    url = (r.json() or {}).get("url")
    if not url:
      raise UploadFailed("Evidence upload returned no url")
    return url


def _system_prompt() -> str:
  return """
You summarize the state of a photography project for the studio owner.
Write 3-5 short sentences in plain English: where the project stands in its
workflow, what the client still has to confirm, what is unpaid on either side,
and one suggested next step. Do not invent numbers that are not in the data.
""".strip()


class Summarizer:
  """Read-only AI summary of a project aggregate via OpenRouter."""

  url = "https://openrouter.ai/api/v1/chat/completions"

  def __init__(self, api_key: str = OPENROUTER_API_KEY, model: str = OPENROUTER_MODEL, timeout: float = 60):
    self.api_key = api_key
    self.model = model
    self.timeout = timeout

  async def summarize(self, aggregate: Dict[str, Any]) -> str:
    if not self.api_key:
      raise CollaboratorError("OPENROUTER_API_KEY is not set")

    headers = {
      "Authorization": f"Bearer {self.api_key}",
      "Content-Type": "application/json",
    }
    payload = {
      "model": self.model,
      "messages": [
        {"role": "system", "content": _system_prompt()},
        {"role": "user", "content": json.dumps(aggregate, default=str)},
      ],
      "temperature": 0.2,
    }

    try:
      async with httpx.AsyncClient(timeout=self.timeout) as client:
        r = await client.post(self.url, headers=headers, json=payload)
    except httpx.HTTPError as exc:
      raise CollaboratorError(f"OpenRouter unreachable: {exc}") from exc
    if r.status_code >= 400:
      raise CollaboratorError(f"OpenRouter error: {r.status_code} {r.text[:200]}")

    try:
      return r.json()["choices"][0]["message"]["content"].strip()
    except (KeyError, IndexError, TypeError, ValueError) as exc:
      raise CollaboratorError("OpenRouter returned an unexpected body") from exc


def get_dispatcher() -> MessageDispatcher:
  return MessageDispatcher()

def get_uploader() -> EvidenceUploader:
  return EvidenceUploader()

def get_summarizer() -> Summarizer:
  return Summarizer()
