from fastapi import Depends, Header, HTTPException
from sqlmodel import Session
from src.api.common.utils.database import get_db
from src.api.providers.models.provider import Provider


def get_provider_id(
    x_provider_id: int = Header(..., description="Authenticated provider"),
    db: Session = Depends(get_db),
) -> int:
    """
    Resolve the provider making the request.

    Authentication happens upstream; the gateway forwards the provider's ID
    in the X-Provider-Id header.
    """
    if not db.get(Provider, x_provider_id):
        raise HTTPException(status_code=404, detail="Provider not found")
    return x_provider_id
