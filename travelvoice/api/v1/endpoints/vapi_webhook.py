"""
Voice platform webhook receiver
"""
import logging
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from travelvoice.core.database import get_db
from travelvoice.integrations.mailer import EmailService, get_email_service
from travelvoice.integrations.webhooks import WebhookDispatcher, get_webhook_dispatcher
from travelvoice.services.call_reports import (
    CallReport,
    CallReportError,
    notification_recipients,
    record_call,
)

logger = logging.getLogger(__name__)
router = APIRouter()


async def _send_call_report_email(email_service: EmailService, recipients, agent_name: str, report: CallReport):
    try:
        await email_service.send_call_report(
            recipients,
            agent_name=agent_name,
            call_id=report.call_id or "",
            duration_seconds=report.duration_seconds,
            summary=report.summary,
            transcript=report.transcript_text,
            recording_url=report.recording_url,
            structured_data=report.structured_data,
        )
    except Exception as e:
        logger.error(f"Failed to send call report email for call {report.call_id}: {str(e)}")


@router.post("/webhook")
async def vapi_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher),
):
    """
    Handle server messages from the voice platform. Only end-of-call reports
    are acted on; everything else is acknowledged.
    """
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid JSON payload"
        )

    message = (payload or {}).get("message") or {}
    message_type = message.get("type")
    if message_type != "end-of-call-report":
        logger.debug(f"Ignoring Vapi message type {message_type}")
        return {"received": True}

    if not message.get("call"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No call data"
        )

    report = CallReport.from_message(message)
    try:
        agent, call = await record_call(db, report)
    except CallReportError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    if agent.custom_webhook_url:
        background_tasks.add_task(
            dispatcher.deliver,
            agent.custom_webhook_url,
            report.customer_payload(agent),
            agent.id,
            agent.organization_id,
            "call.completed",
        )

    recipients = notification_recipients(agent)
    if recipients:
        background_tasks.add_task(_send_call_report_email, email_service, recipients, agent.name, report)

    logger.info(f"Recorded call {report.call_id} for agent {agent.id} ({report.duration_seconds}s)")
    return {"success": True, "callId": call.id}
