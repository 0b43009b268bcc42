"""HighLevel (LeadConnector) API client with retry and rate limiting support."""

from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from callsync.config import get_settings
from callsync.core.exceptions import (
    HighLevelAPIError,
    HighLevelAuthError,
    HighLevelRateLimitError,
    TokenRefreshError,
)
from callsync.core.logging import get_logger

logger = get_logger(__name__)

CALL_LOGS_PATH = "/voice-ai/dashboard/call-logs"


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class HighLevelClient:
    """Async client for the HighLevel REST API.

    Wraps httpx.AsyncClient with:
    - Automatic retry with exponential backoff on 429
    - Typed errors carrying the upstream status and body
    - The OAuth refresh-token exchange
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_version: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize HighLevel client.

        Args:
            base_url: API base URL. If not provided, uses settings.
            api_version: Value of the ``Version`` header.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        settings = get_settings()
        self._base_url = (base_url or settings.highlevel_api_base_url).rstrip("/")
        self._api_version = api_version or settings.highlevel_api_version
        self._token_url = settings.highlevel_token_url
        self._client_id = settings.highlevel_client_id
        self._client_secret = settings.highlevel_client_secret
        self._redirect_uri = settings.highlevel_redirect_uri
        self._client = httpx.AsyncClient(
            timeout=timeout or settings.highlevel_timeout_seconds,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HighLevelClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def _headers(self, access_token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {access_token}",
            "Version": self._api_version,
            "Accept": "application/json",
        }

    @retry(
        retry=retry_if_exception_type((HighLevelRateLimitError,)),
        stop=stop_after_attempt(5),
        wait=wait_exponential(multiplier=1, min=2, max=60),
        reraise=True,
    )
    async def _get(
        self,
        path: str,
        access_token: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Make a single GET with retry logic.

        Raises:
            HighLevelAuthError: On 401
            HighLevelRateLimitError: On 429 (triggers retry)
            HighLevelAPIError: On any other non-2xx or transport failure
        """
        url = f"{self._base_url}{path}"
        try:
            logger.debug("Calling HighLevel API", path=path, params=params)
            response = await self._client.get(
                url, params=params, headers=self._headers(access_token)
            )
        except httpx.HTTPError as e:
            logger.error("HighLevel request failed", path=path, error=str(e))
            raise HighLevelAPIError(f"HighLevel request failed: {e}") from e

        if response.status_code == 401:
            logger.warning("HighLevel rejected access token", path=path)
            raise HighLevelAuthError("HighLevel authentication failed", body=response.text)
        if response.status_code == 429:
            logger.warning("Rate limit hit, will retry", path=path)
            raise HighLevelRateLimitError("HighLevel rate limit exceeded", body=response.text)
        if response.is_error:
            logger.error(
                "HighLevel API error",
                path=path,
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise HighLevelAPIError(
                f"HighLevel API error: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            return response.json()
        except ValueError as e:
            raise HighLevelAPIError(
                "HighLevel returned a non-JSON body",
                status_code=502,
                body=response.text,
            ) from e

    async def list_call_logs(
        self,
        access_token: str,
        location_id: str | None,
        start: datetime,
        end: datetime,
        tz_name: str,
        page: int = 1,
        page_size: int = 50,
    ) -> list[dict[str, Any]]:
        """Get one page of Voice AI call logs.

        Args:
            access_token: Bearer token
            location_id: HighLevel sub-account (location) id
            start: Window start (inclusive)
            end: Window end (inclusive)
            tz_name: IANA timezone the dashboard filters in
            page: 1-based page index
            page_size: Records per page

        Returns:
            Raw call log dicts; fewer than ``page_size`` means no more pages.
        """
        params: dict[str, Any] = {
            "startDate": _iso(start),
            "endDate": _iso(end),
            "timezone": tz_name,
            "page": page,
            "pageSize": page_size,
        }
        if location_id:
            params["locationId"] = location_id

        data = await self._get(CALL_LOGS_PATH, access_token, params)
        if isinstance(data, list):
            return data
        if not isinstance(data, dict):
            raise HighLevelAPIError(
                "HighLevel returned an unexpected call log body",
                status_code=502,
                body=str(data)[:2000],
            )
        return data.get("callLogs") or []

    async def get_call_log(
        self,
        access_token: str,
        call_id: str,
        location_id: str | None = None,
    ) -> dict[str, Any]:
        """Get a single call log with recording and message details."""
        params = {"locationId": location_id} if location_id else None
        data = await self._get(f"{CALL_LOGS_PATH}/{call_id}", access_token, params)
        if isinstance(data, dict) and isinstance(data.get("callLog"), dict):
            return data["callLog"]
        return data

    async def refresh_access_token(
        self,
        refresh_token: str,
        user_type: str,
    ) -> dict[str, Any]:
        """Exchange a refresh token for a new token pair.

        Returns:
            Dict with ``access_token``, ``refresh_token`` (may be absent)
            and ``expires_at`` (aware UTC datetime)

        Raises:
            TokenRefreshError: On any failure of the exchange
        """
        form = {
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "user_type": user_type,
            "redirect_uri": self._redirect_uri,
        }
        try:
            response = await self._client.post(
                self._token_url,
                data=form,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            logger.error("Token refresh request failed", error=str(e))
            raise TokenRefreshError(f"Token refresh request failed: {e}") from e

        if response.is_error:
            logger.error(
                "Token refresh rejected",
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise TokenRefreshError(
                "Failed to refresh HighLevel token",
                {"upstream_status": response.status_code, "upstream_body": response.text[:2000]},
            )

        try:
            payload = response.json()
        except ValueError as e:
            logger.error("Token refresh returned a non-JSON body", body=response.text[:500])
            raise TokenRefreshError(
                "Token refresh response is not JSON",
                {"upstream_status": response.status_code, "upstream_body": response.text[:2000]},
            ) from e

        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not access_token:
            raise TokenRefreshError(
                "Token refresh response has no access_token",
                {"upstream_status": response.status_code},
            )

        try:
            expires_in = int(payload.get("expires_in") or 0)
        except (TypeError, ValueError) as e:
            raise TokenRefreshError(
                "Token refresh response has an invalid expires_in",
                {"expires_in": str(payload.get("expires_in"))},
            ) from e
        return {
            "access_token": access_token,
            "refresh_token": payload.get("refresh_token"),
            "expires_at": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        }
