"""
End-of-call report handling.

The voice platform posts an ``end-of-call-report`` message when a call
finishes. The report is stored as a Call row, its duration is deducted
from the organization's minute balance, and the agent's customer webhook
and notification recipients are told about it.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from travelvoice.models import Agent, Call, CallStatus, Organization

logger = logging.getLogger(__name__)

COMPLETED_CALL_STATUSES = {"completed", "ended"}


class CallReportError(Exception):
    """The report cannot be attributed to an agent."""

    def __init__(self, message: str, status_code: int):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def _first(*values):
    return next((value for value in values if value), None)


def _structured_data(artifact: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    data = artifact.get("structuredData")
    if isinstance(data, list):
        return data[0] if data else None
    if isinstance(data, dict):
        return data
    outputs = artifact.get("structuredOutputs")
    if isinstance(outputs, dict):
        for output in outputs.values():
            if isinstance(output, dict) and isinstance(output.get("result"), dict):
                return output["result"]
    return None


def _duration_seconds(message: Dict[str, Any], call: Dict[str, Any]) -> int:
    if message.get("durationSeconds") is not None:
        seconds = float(message["durationSeconds"])
    elif message.get("durationMs") is not None:
        seconds = float(message["durationMs"]) / 1000
    elif call.get("durationSeconds") is not None:
        seconds = float(call["durationSeconds"])
    elif call.get("durationMinutes") is not None:
        seconds = float(call["durationMinutes"]) * 60
    else:
        seconds = 0
    return max(0, round(seconds))


@dataclass
class CallReport:
    call_id: Optional[str]
    assistant_id: Optional[str]
    duration_seconds: int
    status: str
    ended_reason: Optional[str] = None
    summary: Optional[str] = None
    transcript_text: Optional[str] = None
    recording_url: Optional[str] = None
    structured_data: Optional[Dict[str, Any]] = None
    messages: List[Dict[str, Any]] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_message(cls, message: Dict[str, Any]) -> "CallReport":
        call = message.get("call") or {}
        artifact = message.get("artifact") or {}
        analysis = message.get("analysis") or {}
        recording = artifact.get("recording") or {}
        assistant = call.get("assistant")

        ended_reason = message.get("endedReason")
        completed = ended_reason == "customer-ended-call" or call.get("status") in COMPLETED_CALL_STATUSES

        return cls(
            call_id=call.get("id"),
            assistant_id=_first(
                call.get("assistantId"),
                assistant.get("id") if isinstance(assistant, dict) else assistant,
            ),
            duration_seconds=_duration_seconds(message, call),
            status=CallStatus.COMPLETED.value if completed else CallStatus.FAILED.value,
            ended_reason=ended_reason,
            summary=_first(message.get("summary"), analysis.get("summary")),
            transcript_text=_first(message.get("transcript"), artifact.get("transcript")),
            recording_url=_first(
                message.get("recordingUrl"),
                (recording.get("mono") or {}).get("combinedUrl"),
                recording.get("stereoUrl"),
                message.get("stereoRecordingUrl"),
            ),
            structured_data=_structured_data(artifact),
            messages=list(_first(artifact.get("messages"), message.get("messages")) or []),
            extra={
                "analysis": analysis or None,
                "costs": message.get("costs"),
                "startedAt": message.get("startedAt"),
                "endedAt": message.get("endedAt"),
                "logUrl": message.get("logUrl"),
            },
        )

    def customer_payload(self, agent: Agent) -> Dict[str, Any]:
        return {
            "assistant_name": agent.name,
            "call_id": self.call_id,
            "duration_seconds": self.duration_seconds,
            "summary": self.summary or "No summary available",
            "transcript": self.transcript_text or "No transcript available",
            "recording_url": self.recording_url,
            "extracted_data": self.structured_data or {},
        }


async def record_call(db: AsyncSession, report: CallReport) -> tuple:
    """
    Store the report and charge its duration. Returns ``(agent, call)``.
    """
    if not report.assistant_id:
        raise CallReportError("No assistant ID", 400)

    result = await db.execute(select(Agent).where(Agent.vapi_assistant_id == report.assistant_id))
    agent = result.scalar_one_or_none()
    if agent is None:
        logger.error(f"Agent not found for Vapi assistant {report.assistant_id}")
        raise CallReportError("Agent not found", 404)

    call = Call(
        organization_id=agent.organization_id,
        agent_id=agent.id,
        vapi_call_id=report.call_id,
        status=report.status,
        ended_reason=report.ended_reason,
        duration_seconds=report.duration_seconds,
        summary=report.summary,
        recording_url=report.recording_url,
        transcript=report.messages,
        extracted_data={
            "summary": report.summary,
            "transcriptText": report.transcript_text,
            "structuredData": report.structured_data,
            **report.extra,
        },
    )
    db.add(call)

    if report.duration_seconds > 0:
        organization = await db.get(Organization, agent.organization_id)
        if organization is not None:
            organization.time_remaining_seconds = max(
                0, (organization.time_remaining_seconds or 0) - report.duration_seconds
            )
            logger.info(
                f"Deducted {report.duration_seconds}s from organization {organization.id}, "
                f"{organization.time_remaining_seconds}s remaining"
            )

    await db.flush()
    return agent, call


def notification_recipients(agent: Agent) -> List[str]:
    emails = (agent.advanced_config or {}).get("notificationEmails")
    if not isinstance(emails, list):
        return []
    return [email for email in emails if isinstance(email, str) and email]
