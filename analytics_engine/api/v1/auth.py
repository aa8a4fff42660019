"""
Authentication endpoints - application registration and API key management.
"""
import logging
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from analytics_engine.core.database import get_db
from analytics_engine.schemas.application import (
    ApplicationCreate,
    ApplicationOwnerAction,
    ApplicationResponse,
    ApplicationWithKey,
)
from analytics_engine.schemas.response import api_response
from analytics_engine.services.credential_service import CredentialService

logger = logging.getLogger(__name__)
router = APIRouter()


def _with_key(application, api_key: str) -> dict:
    fields = ApplicationResponse.model_validate(application).model_dump()
    return ApplicationWithKey(**fields, api_key=api_key).model_dump(mode="json")


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register_application(data: ApplicationCreate, db: Session = Depends(get_db)):
    """
    Register a new application and generate its API key.
    The key is shown only in this response.
    """
    logger.info(f"Registering application '{data.name}' ({data.type}) for owner {data.created_by}")
    api_key, application = CredentialService(db).issue(
        name=data.name,
        domain=data.domain,
        app_type=data.type,
        owner_id=data.created_by,
    )
    return api_response(
        "Application registered successfully",
        {"application": _with_key(application, api_key)},
    )


@router.post("/revoke")
def revoke_api_key(data: ApplicationOwnerAction, db: Session = Depends(get_db)):
    """Deactivate an application's API key."""
    application = CredentialService(db).revoke(data.app_id, data.user_id)
    return api_response(
        "API key revoked successfully",
        {"application": ApplicationResponse.model_validate(application).model_dump(mode="json")},
    )


@router.post("/regenerate")
def regenerate_api_key(data: ApplicationOwnerAction, db: Session = Depends(get_db)):
    """Issue a new key for an application; the old key stops working."""
    api_key, application = CredentialService(db).regenerate(data.app_id, data.user_id)
    return api_response(
        "API key regenerated successfully",
        {"application": _with_key(application, api_key)},
    )


@router.get("/applications/{owner_id}")
def list_applications(owner_id: str, db: Session = Depends(get_db)):
    """All applications registered by an owner, newest first."""
    applications = CredentialService(db).list_for_owner(owner_id)
    logger.info(f"Listed {len(applications)} applications for owner {owner_id}")
    return api_response(
        "Applications retrieved successfully",
        {"applications": [ApplicationResponse.model_validate(a).model_dump(mode="json") for a in applications]},
    )
