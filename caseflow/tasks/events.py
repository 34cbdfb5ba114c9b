import hashlib
import hmac
import json
import logging
from datetime import datetime, timezone

from caseflow.celery_app import celery_app

logger = logging.getLogger(__name__)


def sign_payload(secret: str, body: str) -> str:
    return hmac.new(secret.encode(), body.encode(), hashlib.sha256).hexdigest()


@celery_app.task(
    name="caseflow.tasks.events.process_event",
    ignore_result=True,
    bind=True,
    max_retries=5,
    default_retry_delay=10,
)
def process_event(
    self: "celery_app.Task",  # type: ignore[name-defined]
    event_type: str,
    entity_type: str,
    entity_id: str,
    actor: str | None = None,
    case_id: str | None = None,
    payload: dict | None = None,
) -> None:
    """Forward a case event to the configured webhook via HTTP POST with HMAC signing."""
    import httpx

    from caseflow.config import settings

    url = settings.case_events_webhook_url
    if not url:
        logger.debug("No case-events webhook configured; dropping %s", event_type)
        return

    event_data = {
        "event_type": event_type,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "actor": actor,
        "case_id": case_id,
        "payload": payload or {},
        "occurred_at": datetime.now(timezone.utc).isoformat(),
    }
    body = json.dumps(event_data, default=str)
    headers: dict[str, str] = {"Content-Type": "application/json"}
    secret = settings.case_events_webhook_secret
    if secret:
        headers["X-Webhook-Signature"] = sign_payload(secret, body)

    logger.info("Delivering event %s for %s/%s", event_type, entity_type, entity_id)
    try:
        with httpx.Client(timeout=30.0) as client:
            resp = client.post(url, content=body, headers=headers)
        delivered = 200 <= resp.status_code < 300
        if not delivered:
            logger.warning(
                "Event %s delivery returned HTTP %s", event_type, resp.status_code
            )
    except (httpx.HTTPError, OSError) as e:
        logger.warning("Event %s delivery failed: %s", event_type, e)
        delivered = False

    if not delivered:
        try:
            self.retry(countdown=10 * (2 ** (self.request.retries or 0)))
        except self.MaxRetriesExceededError:
            logger.error("Event %s delivery exhausted retries", event_type)
