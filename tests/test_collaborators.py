"""Outbound collaborators when their services are not configured."""
import asyncio

import pytest

from collaborators import EvidenceUploader, MessageDispatcher, Summarizer
from errors import CollaboratorError, UploadFailed
from schemas import OutboundMessage


def test_dispatcher_without_url_only_logs(caplog):
  message = OutboundMessage(recipient="0812", project_id="PRJ-1", project_name="Wedding", sub_status="Album layout")
  with caplog.at_level("INFO", logger="collaborators"):
    assert MessageDispatcher(url="").send(message) is False
  assert "not sent" in caplog.text


def test_uploader_without_url_fails():
  with pytest.raises(UploadFailed):
    EvidenceUploader(url="").upload("proof.jpg", b"x")


def test_summarizer_requires_api_key():
  with pytest.raises(CollaboratorError):
    asyncio.run(Summarizer(api_key="").summarize({"project": {}}))
