"""Best-effort backfill of recording and message details."""

from pydantic import ValidationError

from callsync.core.exceptions import AppException
from callsync.core.logging import get_logger
from callsync.domain.entities.call import NormalizedCall, RawCall
from callsync.domain.entities.reference import Credential
from callsync.domain.entities.sync_run import SyncRunState
from callsync.infrastructure.highlevel.client import HighLevelClient

logger = get_logger(__name__)


class CallDetailEnricher:
    """Fills a missing recording URL or message id from the call detail endpoint.

    Failures are logged on the run and counted; they never fail the call
    or the run.
    """

    def __init__(self, client: HighLevelClient, enabled: bool = True):
        self._client = client
        self._enabled = enabled

    @staticmethod
    def needs_enrichment(call: NormalizedCall) -> bool:
        return not call.recording_url or not call.message_id

    async def enrich(
        self,
        call: NormalizedCall,
        credential: Credential,
        run: SyncRunState,
    ) -> NormalizedCall:
        if not self._enabled or not self.needs_enrichment(call):
            return call

        try:
            payload = await self._client.get_call_log(
                credential.access_token,
                call.upstream_call_id,
                credential.location_id,
            )
            detail = RawCall.from_payload(payload)
        except (AppException, ValidationError) as e:
            run.enrichment_failures += 1
            run.log(f"Detail fetch failed for call {call.upstream_call_id}: {e}")
            logger.warning(
                "Call detail enrichment failed",
                run_id=run.id,
                call_id=call.upstream_call_id,
                error=str(e),
            )
            return call

        updates = {}
        if not call.recording_url and detail.recording_url:
            updates["recording_url"] = detail.recording_url
        if not call.message_id and detail.message_id:
            updates["message_id"] = detail.message_id
        if not call.transcript and detail.transcript:
            updates["transcript"] = detail.transcript
        return call.model_copy(update=updates) if updates else call
