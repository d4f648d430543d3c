"""Main FastAPI application entry point."""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from shiftledger.api.routes import router
from shiftledger.config import settings
from shiftledger.database import Base, engine
from shiftledger.errors import ShiftLedgerError
# Import models to register them with SQLAlchemy Base
from shiftledger.models.domain import Organization, Role, Shift, ShiftAssignment, Staff, StaffAddress, StaffRole, User
from shiftledger.models.audit import AuditLog, ShiftAssignmentLog

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger("shiftledger")

__version__ = "0.1.0"

# Create database tables
if settings.environment == "dev":
    Base.metadata.create_all(bind=engine)
    logger.info("Dev mode: tables created")

# Create FastAPI app
app = FastAPI(
    title="shiftledger",
    description="Versioned scheduling records with a tamper-evident audit trail.",
    version=__version__
)


@app.exception_handler(ShiftLedgerError)
def handle_domain_error(request: Request, exc: ShiftLedgerError):
    """NotFound -> 404, Conflict -> 409, ValidationFailure -> 422, StoreFailure -> 503."""
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "retryable": exc.retryable}
    )


# Include API routes
app.include_router(router, prefix="/api", tags=["shiftledger"])


# Health check
@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "shiftledger", "version": __version__}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
