"""
Vapi voice platform client.

Thin async wrapper over the REST API: assistants, tools, files, structured
outputs, phone numbers and outbound calls.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from travelvoice.core.config import settings

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_MODEL_PROVIDER = "openai"
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 250
DEFAULT_FIRST_MESSAGE = "Hello! How can I help you today?"
DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."
VOICE_PROVIDER = "11labs"
VOICE_MODEL = "eleven_turbo_v2_5"


class VapiError(Exception):
    """Raised when the voice platform answers with a non-2xx status."""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Vapi API error ({status_code}): {body}")


def _voice(voice_id: str) -> Dict[str, Any]:
    return {"provider": VOICE_PROVIDER, "voiceId": voice_id, "model": VOICE_MODEL}


def current_model_settings(assistant: Dict[str, Any]) -> Dict[str, Any]:
    """
    Model settings of a fetched assistant as ``update_assistant`` keyword
    arguments, so a partial update does not reset them.
    """
    model = assistant.get("model") or {}
    temperature = model.get("temperature")
    max_tokens = model.get("maxTokens")
    return {
        "model": model.get("model") or DEFAULT_MODEL,
        "model_provider": model.get("provider") or DEFAULT_MODEL_PROVIDER,
        "temperature": DEFAULT_TEMPERATURE if temperature is None else temperature,
        "max_tokens": DEFAULT_MAX_TOKENS if max_tokens is None else max_tokens,
    }


class VapiClient:
    """Async client for the Vapi REST API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.VAPI_API_KEY
        self.base_url = (base_url or settings.VAPI_BASE_URL).rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=timeout or settings.VAPI_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        response = await self._client.request(method, path, **kwargs)
        if response.is_error:
            raise VapiError(response.status_code, response.text)
        if not response.content:
            return None
        return response.json()

    # Assistants

    async def create_assistant(
        self,
        name: str,
        system_prompt: Optional[str] = None,
        first_message: Optional[str] = None,
        voice_id: Optional[str] = None,
        model: Optional[str] = None,
        server_url: Optional[str] = None,
        background_denoising_enabled: bool = True,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": name,
            "firstMessage": first_message or DEFAULT_FIRST_MESSAGE,
            "model": {
                "provider": DEFAULT_MODEL_PROVIDER,
                "model": model or DEFAULT_MODEL,
                "messages": [{"role": "system", "content": system_prompt or DEFAULT_SYSTEM_PROMPT}],
            },
            "backgroundDenoisingEnabled": background_denoising_enabled,
        }
        if voice_id:
            payload["voice"] = _voice(voice_id)
        if server_url:
            payload["serverUrl"] = server_url
        return await self._request("POST", "/assistant", json=payload)

    async def update_assistant(
        self,
        assistant_id: str,
        *,
        name: Optional[str] = None,
        first_message: Optional[str] = None,
        system_prompt: Optional[str] = None,
        voice_id: Optional[str] = None,
        model: Optional[str] = None,
        model_provider: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        tool_ids: Optional[List[str]] = None,
        server_url: Optional[str] = None,
        artifact_plan: Optional[Dict[str, Any]] = None,
        first_message_mode: Optional[str] = None,
        max_duration_seconds: Optional[int] = None,
        background_sound: Optional[str] = None,
        background_denoising_enabled: Optional[bool] = None,
        voicemail_detection: Optional[Dict[str, Any]] = None,
        transcription_language: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        PATCH an assistant. The model block is rebuilt whenever any model
        field is given, so callers updating tools must pass the current model
        settings along to keep them.
        """
        payload: Dict[str, Any] = {}
        if name:
            payload["name"] = name
        if first_message:
            payload["firstMessage"] = first_message
        if server_url:
            payload["serverUrl"] = server_url
        if artifact_plan:
            payload["artifactPlan"] = artifact_plan
        if first_message_mode:
            payload["firstMessageMode"] = first_message_mode
        if max_duration_seconds:
            payload["maxDurationSeconds"] = max_duration_seconds
        if background_sound:
            payload["backgroundSound"] = None if background_sound == "off" else background_sound
        if background_denoising_enabled is not None:
            payload["backgroundDenoisingEnabled"] = background_denoising_enabled
        if voicemail_detection:
            payload["voicemailDetection"] = {
                "provider": "twilio",
                "enabled": bool(voicemail_detection.get("enabled")),
            }
            if voicemail_detection.get("timeout"):
                payload["voicemailDetection"]["machineDetectionTimeout"] = voicemail_detection["timeout"]
        if transcription_language:
            payload["transcriber"] = {"provider": "deepgram", "language": transcription_language}

        if any(
            value is not None
            for value in (system_prompt, model, model_provider, temperature, max_tokens, tool_ids)
        ):
            payload["model"] = {
                "provider": model_provider or DEFAULT_MODEL_PROVIDER,
                "model": model or DEFAULT_MODEL,
                "temperature": DEFAULT_TEMPERATURE if temperature is None else temperature,
                "maxTokens": DEFAULT_MAX_TOKENS if max_tokens is None else max_tokens,
            }
            if tool_ids is not None:
                payload["model"]["toolIds"] = tool_ids
            if system_prompt:
                payload["model"]["messages"] = [{"role": "system", "content": system_prompt}]

        if voice_id:
            payload["voice"] = _voice(voice_id)

        return await self._request("PATCH", f"/assistant/{assistant_id}", json=payload)

    async def get_assistant(self, assistant_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/assistant/{assistant_id}")

    async def delete_assistant(self, assistant_id: str) -> None:
        await self._request("DELETE", f"/assistant/{assistant_id}")

    # Structured outputs

    async def create_structured_output(self, name: str, schema: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request(
            "POST", "/structured-output", json={"name": name, "type": "ai", "schema": schema}
        )

    async def update_structured_output(
        self, structured_output_id: str, name: str, schema: Dict[str, Any]
    ) -> Dict[str, Any]:
        return await self._request(
            "PATCH",
            f"/structured-output/{structured_output_id}",
            json={"name": name, "schema": schema},
        )

    # Files

    async def upload_file(self, filename: str, content: bytes, content_type: Optional[str] = None) -> Dict[str, Any]:
        files = {"file": (filename, content, content_type or "application/octet-stream")}
        return await self._request("POST", "/file", files=files)

    async def delete_file(self, file_id: str) -> None:
        await self._request("DELETE", f"/file/{file_id}")

    # Tools

    async def create_tool(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/tool", json=params)

    async def update_tool(self, tool_id: str, params: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("PATCH", f"/tool/{tool_id}", json=params)

    async def list_tools(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/tool") or []

    # Phone numbers

    async def import_twilio_phone_number(
        self,
        number: str,
        twilio_account_sid: str,
        twilio_auth_token: str,
        name: Optional[str] = None,
        assistant_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload = {
            "provider": "twilio",
            "number": number,
            "twilioAccountSid": twilio_account_sid,
            "twilioAuthToken": twilio_auth_token,
        }
        if name:
            payload["name"] = name
        if assistant_id:
            payload["assistantId"] = assistant_id
        return await self._request("POST", "/phone-number", json=payload)

    async def update_phone_number(self, phone_number_id: str, assistant_id: Optional[str]) -> Dict[str, Any]:
        return await self._request(
            "PATCH", f"/phone-number/{phone_number_id}", json={"assistantId": assistant_id}
        )

    async def delete_phone_number(self, phone_number_id: str) -> None:
        await self._request("DELETE", f"/phone-number/{phone_number_id}")

    # Calls

    async def create_outbound_call(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/call", json=params)


_vapi_client: Optional[VapiClient] = None


def get_vapi_client() -> VapiClient:
    """FastAPI dependency returning the shared client."""
    global _vapi_client
    if _vapi_client is None:
        _vapi_client = VapiClient()
    return _vapi_client


async def close_vapi_client() -> None:
    global _vapi_client
    if _vapi_client is not None:
        await _vapi_client.close()
        _vapi_client = None
