"""
Transactional email through the Resend HTTP API.
"""
import html
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from travelvoice.core.config import settings

logger = logging.getLogger(__name__)


class EmailError(Exception):
    pass


class EmailService:
    """Sends HTML email. Without an API key every send is logged and skipped."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.RESEND_API_KEY
        self.sender = f"{settings.EMAIL_FROM_NAME} <{settings.EMAIL_FROM}>"
        self._transport = transport
        if not self.api_key:
            logger.warning("RESEND_API_KEY is not set. Email notifications will not work.")

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def send(self, to: List[str], subject: str, html_body: str) -> Optional[str]:
        if not self.enabled:
            logger.info(f"Email disabled, skipping '{subject}' to {len(to)} recipient(s)")
            return None

        async with httpx.AsyncClient(transport=self._transport, timeout=15.0) as client:
            response = await client.post(
                settings.RESEND_API_URL,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={"from": self.sender, "to": to, "subject": subject, "html": html_body},
            )
        if response.is_error:
            raise EmailError(f"Email provider error ({response.status_code}): {response.text}")
        return response.json().get("id")

    async def send_invitation(
        self,
        email: str,
        organization_name: str,
        inviter_name: str,
        role: str,
        invite_url: str,
    ) -> Optional[str]:
        return await self.send(
            [email],
            f"You've been invited to join {organization_name} on Travel Voice",
            format_invitation_email_html(organization_name, inviter_name, role, invite_url),
        )

    async def send_call_report(
        self,
        recipients: List[str],
        agent_name: str,
        call_id: str,
        duration_seconds: int,
        summary: Optional[str] = None,
        transcript: Optional[str] = None,
        recording_url: Optional[str] = None,
        structured_data: Optional[Dict[str, Any]] = None,
    ) -> Optional[str]:
        sent_at = datetime.now(timezone.utc).strftime("%d %b %Y %H:%M UTC")
        return await self.send(
            recipients,
            f"Call Report: {agent_name} - {sent_at}",
            format_call_email_html(
                agent_name, call_id, duration_seconds, summary, transcript, recording_url, structured_data
            ),
        )


def _humanize(key: str) -> str:
    return key.replace("_", " ").title()


def format_call_email_html(
    agent_name: str,
    call_id: str,
    duration_seconds: int,
    summary: Optional[str],
    transcript: Optional[str],
    recording_url: Optional[str],
    structured_data: Optional[Dict[str, Any]],
) -> str:
    duration = f"{duration_seconds // 60}m {duration_seconds % 60}s"
    sections = []
    if summary:
        sections.append(
            f'<div class="section"><div class="section-title">Call Summary</div>'
            f'<div class="content">{html.escape(summary)}</div></div>'
        )
    if structured_data:
        rows = "".join(
            f"<tr><td><strong>{html.escape(_humanize(key))}</strong></td>"
            f"<td>{html.escape(json.dumps(value) if isinstance(value, (dict, list)) else str(value))}</td></tr>"
            for key, value in structured_data.items()
        )
        sections.append(
            f'<div class="section"><div class="section-title">Extracted Data</div>'
            f'<table class="structured-data"><tbody>{rows}</tbody></table></div>'
        )
    if recording_url:
        sections.append(
            f'<p style="text-align:center"><a href="{html.escape(recording_url)}" class="button">'
            f"Listen to Call Recording</a></p>"
        )
    if transcript:
        sections.append(
            f'<div class="section"><div class="section-title">Full Transcript</div>'
            f'<div class="content">{html.escape(transcript)}</div></div>'
        )

    return (
        "<!DOCTYPE html><html><body><div class=\"container\">"
        "<div class=\"brand-text\">Travel Voice</div>"
        f"<h1>New Call Report: {html.escape(agent_name)}</h1>"
        f"<p><strong>Duration:</strong> {duration} | <strong>Call ID:</strong> {html.escape(call_id)}</p>"
        + "".join(sections)
        + f"<p class=\"footer\">&copy; {datetime.now(timezone.utc).year} Travel Voice. "
        "This is an automated message sent from your AI Assistant.</p>"
        "</div></body></html>"
    )


def format_invitation_email_html(organization_name: str, inviter_name: str, role: str, invite_url: str) -> str:
    return (
        "<!DOCTYPE html><html><body><div class=\"container\">"
        "<div class=\"brand-text\">Travel Voice</div>"
        f"<h1>Join {html.escape(organization_name)}</h1>"
        f"<p>{html.escape(inviter_name)} has invited you to join <strong>{html.escape(organization_name)}</strong> "
        f"on Travel Voice as {'an' if role == 'admin' else 'a'} <strong>{html.escape(role)}</strong>.</p>"
        f"<p><a href=\"{html.escape(invite_url)}\" class=\"button\">Accept Invitation</a></p>"
        "<p>This invitation expires in 7 days.</p>"
        "</div></body></html>"
    )


_email_service: Optional[EmailService] = None


def get_email_service() -> EmailService:
    """FastAPI dependency returning the shared email service."""
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service
