"""Tests for the Vapi REST client."""

import json

import httpx
import pytest
import pytest_asyncio

from travelvoice.integrations.vapi import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_MODEL,
    DEFAULT_TEMPERATURE,
    VapiClient,
    VapiError,
    current_model_settings,
)


class Recorder:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self.body = body if body is not None else {"id": "asst_1"}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.body)

    @property
    def last_json(self):
        return json.loads(self.requests[-1].content)


@pytest_asyncio.fixture
async def recorder_client():
    recorder = Recorder()
    client = VapiClient(api_key="vapi-key", base_url="https://vapi.test", transport=httpx.MockTransport(recorder))
    yield recorder, client
    await client.close()


async def test_create_assistant_payload(recorder_client):
    recorder, client = recorder_client

    await client.create_assistant(
        name="Ava", system_prompt="Be kind.", voice_id="voice_1", server_url="https://hooks.test/vapi"
    )

    request = recorder.requests[0]
    assert request.method == "POST"
    assert request.url.path == "/assistant"
    assert request.headers["authorization"] == "Bearer vapi-key"
    payload = recorder.last_json
    assert payload["model"]["messages"] == [{"role": "system", "content": "Be kind."}]
    assert payload["voice"]["voiceId"] == "voice_1"
    assert payload["serverUrl"] == "https://hooks.test/vapi"
    assert payload["firstMessage"] == "Hello! How can I help you today?"


async def test_update_without_model_fields_leaves_model_alone(recorder_client):
    recorder, client = recorder_client

    await client.update_assistant("asst_1", name="Ava 2", background_sound="off")

    assert recorder.last_json == {"name": "Ava 2", "backgroundSound": None}


async def test_update_with_tools_rebuilds_model_block(recorder_client):
    recorder, client = recorder_client

    await client.update_assistant(
        "asst_1", system_prompt="Prompt", tool_ids=["tool_1"], model="gpt-4o", temperature=0.0
    )

    model = recorder.last_json["model"]
    assert model["model"] == "gpt-4o"
    assert model["temperature"] == 0.0
    assert model["maxTokens"] == DEFAULT_MAX_TOKENS
    assert model["toolIds"] == ["tool_1"]
    assert model["messages"] == [{"role": "system", "content": "Prompt"}]


async def test_voicemail_and_transcriber(recorder_client):
    recorder, client = recorder_client

    await client.update_assistant(
        "asst_1", voicemail_detection={"enabled": True, "timeout": 20}, transcription_language="en-GB"
    )

    payload = recorder.last_json
    assert payload["voicemailDetection"] == {"provider": "twilio", "enabled": True, "machineDetectionTimeout": 20}
    assert payload["transcriber"] == {"provider": "deepgram", "language": "en-GB"}


async def test_error_status_raises():
    client = VapiClient(
        api_key="k",
        base_url="https://vapi.test",
        transport=httpx.MockTransport(lambda request: httpx.Response(422, json={"message": "bad voice"})),
    )
    with pytest.raises(VapiError) as exc_info:
        await client.get_assistant("asst_1")
    await client.close()

    assert exc_info.value.status_code == 422
    assert "bad voice" in exc_info.value.body


async def test_empty_response_body():
    client = VapiClient(
        api_key="k",
        base_url="https://vapi.test",
        transport=httpx.MockTransport(lambda request: httpx.Response(204)),
    )
    assert await client.delete_file("file_1") is None
    await client.close()


def test_current_model_settings():
    assistant = {"model": {"model": "gpt-4o", "provider": "openai", "temperature": 0, "maxTokens": 500}}
    assert current_model_settings(assistant) == {
        "model": "gpt-4o",
        "model_provider": "openai",
        "temperature": 0,
        "max_tokens": 500,
    }


def test_current_model_settings_defaults():
    settings = current_model_settings({})
    assert settings["model"] == DEFAULT_MODEL
    assert settings["temperature"] == DEFAULT_TEMPERATURE
    assert settings["max_tokens"] == DEFAULT_MAX_TOKENS
