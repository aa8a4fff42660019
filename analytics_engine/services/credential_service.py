"""
Credential Service - application registration and API key verification

Keys are stored only as salted bcrypt hashes, so there is no index from a
presented key to its record: authentication walks every active, unexpired
application and verifies the key against each hash. Cost grows linearly with
the number of active applications; candidate_count() and the
AUTH_SCAN_WARN_THRESHOLD warning make that limit visible.
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from analytics_engine.core.config import settings
from analytics_engine.core.errors import NotFound, StorageUnavailable
from analytics_engine.core.security import generate_api_key, hash_api_key, verify_api_key
from analytics_engine.models.application import Application
from analytics_engine.utils.timeutils import utcnow

logger = logging.getLogger(__name__)


class CredentialService:
    """Issues, verifies, revokes and regenerates application API keys."""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    def _expiry(self) -> datetime:
        return self.clock() + timedelta(days=settings.API_KEY_EXPIRY_DAYS)

    def _commit(self, operation: str, app_id=None):
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Credential store {operation} failed for app {app_id}: {e}")
            raise StorageUnavailable()

    def issue(
        self,
        name: str,
        domain: str,
        app_type: str,
        owner_id: str,
    ) -> Tuple[str, Application]:
        """
        Register an application and generate its API key.

        Returns:
            (plaintext key, stored application). The plaintext is not
            retrievable afterwards.
        """
        api_key = generate_api_key()
        application = Application(
            name=name,
            domain=domain,
            type=app_type,
            created_by=owner_id,
            api_key_hash=hash_api_key(api_key),
            is_active=True,
            expires_at=self._expiry(),
        )
        self.db.add(application)
        self._commit("issue")
        self.db.refresh(application)

        logger.info(f"Application registered: {application.id} ({application.name}, {application.type})")
        return api_key, application

    def _active_filter(self):
        return (Application.is_active.is_(True), Application.expires_at > self.clock())

    def candidate_count(self) -> int:
        """Number of records one authentication attempt has to scan."""
        return self.db.query(func.count(Application.id)).filter(*self._active_filter()).scalar() or 0

    def authenticate(self, presented_key: Optional[str]) -> Optional[Application]:
        """
        Find the active, unexpired application owning presented_key.

        Returns:
            Application, or None for a missing, unknown, expired or
            inactive key (callers must not distinguish these)
        """
        if not presented_key:
            return None

        try:
            candidates = self.db.query(Application).filter(*self._active_filter()).all()
        except SQLAlchemyError as e:
            logger.error(f"Credential lookup failed: {e}")
            raise StorageUnavailable()

        if len(candidates) > settings.AUTH_SCAN_WARN_THRESHOLD:
            logger.warning(
                f"API key scan covered {len(candidates)} active applications "
                f"(threshold {settings.AUTH_SCAN_WARN_THRESHOLD})"
            )

        for application in candidates:
            if verify_api_key(presented_key, application.api_key_hash):
                logger.debug(f"API key authenticated for app {application.id}")
                return application
        return None

    def _owned(self, app_id: UUID, owner_id: str) -> Application:
        application = self.db.query(Application).filter(
            Application.id == app_id,
            Application.created_by == owner_id,
        ).first()
        if not application:
            logger.warning(f"Application {app_id} not found for owner {owner_id}")
            raise NotFound("Application not found")
        return application

    def revoke(self, app_id: UUID, owner_id: str) -> Application:
        """Deactivate an application. History is kept."""
        application = self._owned(app_id, owner_id)
        application.is_active = False
        self._commit("revoke", app_id)
        self.db.refresh(application)

        logger.info(f"API key revoked for app {application.id}")
        return application

    def regenerate(self, app_id: UUID, owner_id: str) -> Tuple[str, Application]:
        """Replace the key of an application, re-activating it and resetting expiry."""
        application = self._owned(app_id, owner_id)
        api_key = generate_api_key()
        application.api_key_hash = hash_api_key(api_key)
        application.is_active = True
        application.expires_at = self._expiry()
        self._commit("regenerate", app_id)
        self.db.refresh(application)

        logger.info(f"API key regenerated for app {application.id}")
        return api_key, application

    def list_for_owner(self, owner_id: str) -> List[Application]:
        """All applications of an owner, newest first."""
        return self.db.query(Application).filter(
            Application.created_by == owner_id
        ).order_by(Application.created_at.desc()).all()
