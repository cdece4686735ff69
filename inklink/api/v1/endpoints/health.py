# inklink/api/v1/endpoints/health.py
"""
Health check endpoints for monitoring system status.
"""
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from inklink.api import deps

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
def health_check():
    """Basic health check - API is responding."""
    return {"status": "healthy", "service": "inklink-transactions"}


@router.get("/db")
def database_health(db: Session = Depends(deps.get_db)):
    """Check database connectivity."""
    try:
        db.execute(text("SELECT 1"))
        return {"status": "healthy", "component": "database"}
    except SQLAlchemyError as e:
        raise HTTPException(
            status_code=503,
            detail=f"Database unhealthy: {type(e).__name__}",
        )


@router.get("/payments")
def payment_providers_health(request: Request):
    """Which payment processors are configured in this instance."""
    providers = deps.get_payment_providers(request)
    return {"status": "healthy", "component": "payments", "providers": providers.list_codes()}
