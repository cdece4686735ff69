# inklink/api/deps.py
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from inklink.core.config import Settings, get_settings
from inklink.db.session import get_db  # noqa: F401
from inklink.schemas.token import TokenPayload
from inklink.services.negotiation_service import NegotiationService
from inklink.services.payment import PaymentProviderFactory, PaymentReconciliationService
from inklink.services.scheduling_service import SchedulingService


# This tells FastAPI where to look for the token.
# Tokens are issued by the identity gateway; the `tokenUrl` is only used
# for the OpenAPI documentation.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")


def get_current_user(
    token: str = Depends(oauth2_scheme),
    settings: Settings = Depends(get_settings),
) -> TokenPayload:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        # Decode the token using the secret key
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
        # Validate the payload against our schema
        token_data = TokenPayload(**payload)
    except (JWTError, ValueError):
        # Catches any error from jose or Pydantic validation
        raise credentials_exception

    return token_data


def get_payment_providers(request: Request) -> PaymentProviderFactory:
    """The provider registry built for this application at startup."""
    return request.app.state.payment_providers


def get_negotiation_service(db: Session = Depends(get_db)) -> NegotiationService:
    return NegotiationService(db)


def get_scheduling_service(db: Session = Depends(get_db)) -> SchedulingService:
    return SchedulingService(db)


def get_reconciliation_service(
    db: Session = Depends(get_db),
    providers: PaymentProviderFactory = Depends(get_payment_providers),
    settings: Settings = Depends(get_settings),
) -> PaymentReconciliationService:
    return PaymentReconciliationService(db, providers, settings)
