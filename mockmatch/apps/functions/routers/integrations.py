import logging

from fastapi import APIRouter, Depends, HTTPException

from mockmatch.apps.functions.schemas import SheetsSyncPayload
from mockmatch.core.dependencies import get_sheets_client
from mockmatch.services.notifications import WebhookClient, WebhookDeliveryError, forward, sheets_payload

router = APIRouter(prefix="/functions", tags=["integrations"])
logger = logging.getLogger(__name__)


@router.post("/sync-to-sheets")
async def sync_to_sheets(
    payload: SheetsSyncPayload,
    client: WebhookClient = Depends(get_sheets_client),
):
    if not client.configured:
        logger.info("Sheets webhook URL not configured; %s record not synced", payload.type)
        return {
            "success": True,
            "message": "Data received but sheets webhook URL not configured",
        }
    try:
        await forward(client, sheets_payload(payload.type, payload.data), channel="sheets")
    except WebhookDeliveryError as exc:
        raise HTTPException(status_code=502, detail=f"Failed to sync to sheets: {exc}") from exc
    return {"success": True, "message": "Data synced to sheets"}
