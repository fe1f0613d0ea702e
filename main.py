import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlmodel import Session

import db
import workflow
from config import CORS_ORIGINS, LOG_LEVEL, OPENROUTER_MODEL
from errors import LedgerError
from lead_route import router as lead_router
from ledger_route import router as ledger_router
from project_route import router as project_router

logging.basicConfig(
  level=LOG_LEVEL,
  format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
  db.init_db()
  with Session(db.engine) as session:
    if workflow.ensure_default_statuses(session):
      logger.info("Stored default project statuses")
  yield


app = FastAPI(title="Studio Ledger Backend", version="1.0.0", lifespan=lifespan)
app.add_middleware(
  CORSMiddleware,
  allow_origins=CORS_ORIGINS,
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
  logger.info("%s %s rejected: %s %s", request.method, request.url.path, exc.kind, exc.detail)
  return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.include_router(ledger_router)
app.include_router(project_router)
app.include_router(lead_router)


@app.get("/health")
def health():
  return {"ok": True, "openrouter_model": OPENROUTER_MODEL}


if __name__ == "__main__":
  import uvicorn

  uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)
