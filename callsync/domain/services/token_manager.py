"""Keeps a usable HighLevel bearer token available for one sync run."""

from datetime import datetime, timezone

from callsync.core.exceptions import CredentialNotFoundError, TokenRefreshError
from callsync.core.logging import get_logger
from callsync.domain.entities.reference import Credential
from callsync.infrastructure.database.repositories import CredentialRepository
from callsync.infrastructure.highlevel.client import HighLevelClient

logger = get_logger(__name__)


class TokenManager:
    """Proactive and one-shot reactive token refresh.

    One instance per run: ``refresh_on_auth_failure`` may be used once,
    a second call raises ``TokenRefreshError``.
    """

    def __init__(
        self,
        credentials: CredentialRepository,
        client: HighLevelClient,
        expiry_skew_seconds: int = 0,
    ):
        self._credentials = credentials
        self._client = client
        self._skew = expiry_skew_seconds
        self._current: Credential | None = None
        self._reactive_refresh_used = False

    @property
    def current(self) -> Credential | None:
        return self._current

    async def ensure_valid_token(self, tenant_id: str) -> Credential:
        """Load the tenant credential, refreshing it first if it has expired."""
        credential = await self._credentials.get_active(tenant_id)
        if credential is None:
            raise CredentialNotFoundError(
                "No active HighLevel connection for tenant",
                {"tenant_id": tenant_id},
            )

        if credential.is_expired(datetime.now(timezone.utc), self._skew):
            logger.info("Access token expired, refreshing", tenant_id=tenant_id)
            credential = await self._refresh(credential)

        self._current = credential
        return credential

    async def refresh_on_auth_failure(self, tenant_id: str) -> Credential:
        """Refresh after upstream rejected the token, at most once per run."""
        if self._reactive_refresh_used:
            raise TokenRefreshError(
                "HighLevel rejected the token again after a refresh",
                {"tenant_id": tenant_id},
            )
        self._reactive_refresh_used = True

        credential = self._current or await self._credentials.get_active(tenant_id)
        if credential is None:
            raise CredentialNotFoundError(
                "No active HighLevel connection for tenant",
                {"tenant_id": tenant_id},
            )

        logger.warning("Refreshing token after 401", tenant_id=tenant_id)
        self._current = await self._refresh(credential)
        return self._current

    async def _refresh(self, credential: Credential) -> Credential:
        if not credential.refresh_token:
            raise TokenRefreshError(
                "No refresh token stored for tenant",
                {"tenant_id": credential.tenant_id},
            )

        tokens = await self._client.refresh_access_token(
            credential.refresh_token,
            credential.resolved_user_type,
        )
        refresh_token = tokens.get("refresh_token") or credential.refresh_token
        await self._credentials.save_tokens(
            credential.tenant_id,
            tokens["access_token"],
            refresh_token,
            tokens["expires_at"],
        )
        return credential.model_copy(
            update={
                "access_token": tokens["access_token"],
                "refresh_token": refresh_token,
                "token_expires_at": tokens["expires_at"],
            }
        )
