"""Provider webhook endpoint for video status notifications.

The provider (or its relay) calls POST /webhooks/video/{provider_job_id} whenever a
video changes state. Payloads are authenticated with the per-job webhook secret and fed
into the same reconciliation used by the poll sweep.
"""

import json
from typing import Annotated

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Request, status
from pydantic import ValidationError

from tutorcast.api.dependencies import (
    get_relocator,
    get_session_factory,
    get_settings,
    get_uow_factory,
)
from tutorcast.core.config import Settings
from tutorcast.core.timezone import utcnow
from tutorcast.services.relocation.relocator import AssetRelocator
from tutorcast.services.relocation.service import relocate_after_completion
from tutorcast.services.video_generation.reconciliation import apply_update, reconcile
from tutorcast.services.video_generation.schemas import VideoWebhookPayload
from tutorcast.services.webhook_signature import SIGNATURE_FIELD, verify_signature

logger = structlog.get_logger()
router = APIRouter()


def _bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


@router.post("/video/{provider_job_id}")
async def receive_video_webhook(
    provider_job_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    x_heygen_signature: Annotated[str | None, Header()] = None,
    settings: Settings = Depends(get_settings),
    uow_factory=Depends(get_uow_factory),
    session_factory=Depends(get_session_factory),
    relocator: AssetRelocator = Depends(get_relocator),
):
    """Receive and reconcile a provider video status notification.

    This endpoint:
    1. Parses the JSON body
    2. Looks up the job by provider video id
    3. Verifies the HMAC signature (header X-HeyGen-Signature or body field "signature")
       against the job's webhook secret
    4. Validates the payload (event, data.video_id, data.status, timestamp)
    5. Reconciles the job (monotonic, conditional write)
    6. Schedules asset relocation when the job completed

    HTTP Status Codes:
        200: Notification accepted (applied or ignored as stale)
        400: Malformed payload, unknown job, invalid signature or id mismatch
    """
    raw_body = await request.body()
    try:
        payload = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning("webhook.invalid_json", provider_job_id=provider_job_id, error=str(e))
        raise _bad_request(f"Invalid JSON payload: {str(e)}")

    if not isinstance(payload, dict):
        raise _bad_request("Webhook payload must be a JSON object")

    async with await uow_factory() as uow:
        job = await uow.video_jobs.get_by_provider_job_id(provider_job_id)
        if job is None:
            logger.warning("webhook.unknown_job", provider_job_id=provider_job_id)
            raise _bad_request(f"Unknown video: {provider_job_id}")

        signature = x_heygen_signature or payload.get(SIGNATURE_FIELD)
        if not verify_signature(payload, signature, job.webhook_secret):
            # Audit trail for authenticity failures
            logger.warning(
                "webhook.signature_invalid",
                job_id=str(job.id),
                provider_job_id=provider_job_id,
                signature_present=bool(signature),
                client_host=request.client.host if request.client else None,
            )
            raise _bad_request("Invalid webhook signature")

        try:
            event = VideoWebhookPayload.model_validate(payload)
        except ValidationError as e:
            logger.warning(
                "webhook.malformed", provider_job_id=provider_job_id, errors=e.errors()
            )
            raise _bad_request(f"Malformed webhook payload: {e.error_count()} error(s)")

        if event.data.video_id != provider_job_id:
            logger.warning(
                "webhook.video_id_mismatch",
                provider_job_id=provider_job_id,
                payload_video_id=event.data.video_id,
            )
            raise _bad_request("data.video_id does not match the webhook path")

        logger.info(
            "webhook.received",
            job_id=str(job.id),
            provider_job_id=provider_job_id,
            event_type=event.event,
            provider_status=event.data.status,
        )

        update = reconcile(job, event.to_status_report(), utcnow())
        if update is None:
            return {"status": "ignored", "job_id": str(job.id), "video_status": job.status.value}

        applied = await apply_update(uow.video_jobs, job, update, source="webhook")

    if applied and update.relocate:
        background_tasks.add_task(
            relocate_after_completion,
            job.id,
            session_factory,
            relocator,
            settings.relocation_max_attempts,
        )

    return {
        "status": "success" if applied else "ignored",
        "job_id": str(job.id),
        "video_status": update.status.value if applied else job.status.value,
    }
