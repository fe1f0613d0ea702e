# config.py
import os
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "").strip()

CORS_ORIGINS = [
  x.strip()
  for x in os.getenv("CORS_ORIGINS", "http://127.0.0.1:5173,http://localhost:5173").split(",")
  if x.strip()
]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()

# Source used for lump-sum cost bookings and public booking deposits
DEFAULT_FUNDING_SOURCE_ID = os.getenv("DEFAULT_FUNDING_SOURCE_ID", "").strip() or None

FOLLOW_UP_HOURS = int(os.getenv("FOLLOW_UP_HOURS", "24"))

MESSAGING_URL = os.getenv("MESSAGING_URL", "").strip()
EVIDENCE_UPLOAD_URL = os.getenv("EVIDENCE_UPLOAD_URL", "").strip()
COLLABORATOR_TIMEOUT = float(os.getenv("COLLABORATOR_TIMEOUT", "15"))

OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY", "").strip()
OPENROUTER_MODEL = os.getenv("OPENROUTER_MODEL", "meta-llama/llama-3.1-8b-instruct").strip()

CANCELLED_STATUS = "Cancelled"

DEFAULT_STATUSES = [
  {"name": "Preparation", "color": "#64748b", "sub_statuses": [
    {"name": "Brief received", "note": ""},
    {"name": "Schedule locked", "note": ""},
  ]},
  {"name": "Confirmed", "color": "#3b82f6", "sub_statuses": [
    {"name": "Contract signed", "note": ""},
    {"name": "Crew assigned", "note": ""},
  ]},
  {"name": "Editing", "color": "#8b5cf6", "sub_statuses": [
    {"name": "Photo selection", "note": "Client picks favourites"},
    {"name": "Color grading", "note": ""},
  ]},
  {"name": "Revision", "color": "#f59e0b", "sub_statuses": [
    {"name": "Revision notes", "note": ""},
  ]},
  {"name": "Print", "color": "#ec4899", "sub_statuses": [
    {"name": "Album layout", "note": "Client approves layout before print"},
    {"name": "Print proof", "note": ""},
  ]},
  {"name": "Shipped", "color": "#06b6d4", "sub_statuses": [
    {"name": "Delivery", "note": ""},
  ]},
  {"name": "Completed", "color": "#10b981", "sub_statuses": []},
]

# Fixed status -> progress table; tenant statuses outside it use their ordinal share
STATUS_PROGRESS = {
  "Pending": 0,
  "Preparation": 10,
  "Confirmed": 25,
  "Editing": 70,
  "Revision": 80,
  "Print": 90,
  "Shipped": 95,
  "Completed": 100,
  CANCELLED_STATUS: 0,
}

CONVERTED_PROJECT_STATUS = "Confirmed"
