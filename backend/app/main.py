"""
Complaint Tracker - FastAPI Application

Main entry point for the complaint tracking backend.

Architecture:
- Public intake → ComplaintWorkflowService → tracking id (PEN-YYYY-NNN)
- Internal users act through the same service; every accepted action
  is one versioned write plus one history ledger entry
- Workflow errors map to HTTP responses in a single exception handler
"""
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .routers import auth_router, complaints_router
from .database import init_db
from .services.complaints import ComplaintWorkflowError

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ALLOW_ORIGINS = [o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()]

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    init_db()
    yield

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="Complaint Tracker",
    description="""
    Complaint Tracker - Public Complaint Workflow

    Members of the public submit complaints about embassy services and
    follow them by tracking id. Supervisors triage and assign, agents
    follow up and request closure, supervisors approve.

    ## Lifecycle
    1. **NEW**: submitted, routed to the supervisor for the service type
    2. **UNDER_VERIFICATION**: supervisor is checking the complaint
    3. **IN_PROGRESS**: an agent is assigned
    4. **AWAITING_SUPERVISOR_APPROVAL**: agent requested closure
    5. **RESOLVED / REJECTED**: terminal

    ## Key Principles
    - Every accepted action appends exactly one history entry
    - Concurrent writers are detected by row version, never silently merged
    - The public tracking view never exposes reporter contact details
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ComplaintWorkflowError)
async def workflow_error_handler(request: Request, exc: ComplaintWorkflowError):
    """Translate workflow errors into their HTTP status."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Include routers
app.include_router(auth_router)
app.include_router(complaints_router)


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "Complaint Tracker",
        "version": "1.0.0",
        "description": "Public complaint intake and tracking",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": "1.0.0"}


# For running with: python -m app.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
