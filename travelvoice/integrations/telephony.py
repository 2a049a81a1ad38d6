"""
Twilio number provisioning: search, purchase and release.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client as TwilioClient

from travelvoice.core.config import settings

logger = logging.getLogger(__name__)


class TelephonyError(Exception):
    """Raised when a Twilio request fails."""
    pass


class TelephonyService:
    """Async facade over the synchronous Twilio REST client."""

    def __init__(self, account_sid: Optional[str] = None, auth_token: Optional[str] = None):
        self.account_sid = account_sid or settings.TWILIO_ACCOUNT_SID
        self.auth_token = auth_token or settings.TWILIO_AUTH_TOKEN
        self._client: Optional[TwilioClient] = None

    @property
    def client(self) -> TwilioClient:
        if self._client is None:
            if not self.account_sid or not self.auth_token:
                raise TelephonyError("Twilio credentials are not configured")
            self._client = TwilioClient(self.account_sid, self.auth_token)
        return self._client

    async def _run(self, func, *args, **kwargs) -> Any:
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except TwilioRestException as e:
            raise TelephonyError(e.msg or str(e)) from e

    async def search_available_numbers(
        self,
        country_code: str = "GB",
        area_code: Optional[str] = None,
        limit: int = 10,
    ) -> List[Dict[str, Any]]:
        def _search():
            params: Dict[str, Any] = {"limit": limit}
            if area_code:
                params["area_code"] = area_code
            return self.client.available_phone_numbers(country_code).local.list(**params)

        numbers = await self._run(_search)
        return [
            {
                "phoneNumber": number.phone_number,
                "friendlyName": number.friendly_name,
                "locality": number.locality,
                "region": number.region,
                "isoCountry": number.iso_country,
                "capabilities": number.capabilities,
            }
            for number in numbers
        ]

    async def purchase_number(self, phone_number: str) -> Dict[str, str]:
        purchased = await self._run(
            lambda: self.client.incoming_phone_numbers.create(phone_number=phone_number)
        )
        logger.info(f"Purchased Twilio number {purchased.phone_number} ({purchased.sid})")
        return {"sid": purchased.sid, "phoneNumber": purchased.phone_number}

    async def release_number_by_sid(self, sid: str) -> None:
        await self._run(lambda: self.client.incoming_phone_numbers(sid).delete())
        logger.info(f"Released Twilio number {sid}")

    async def release_number(self, phone_number: str) -> bool:
        """Release a number looked up by its E.164 value. Returns False when it is not on the account."""
        matches = await self._run(
            lambda: self.client.incoming_phone_numbers.list(phone_number=phone_number, limit=1)
        )
        if not matches:
            logger.warning(f"Twilio number {phone_number} not found on account")
            return False
        await self.release_number_by_sid(matches[0].sid)
        return True


_telephony: Optional[TelephonyService] = None


def get_telephony() -> TelephonyService:
    """FastAPI dependency returning the shared telephony service."""
    global _telephony
    if _telephony is None:
        _telephony = TelephonyService()
    return _telephony
