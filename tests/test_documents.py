"""End-to-end tests for knowledge base documents."""

from pathlib import Path

from travelvoice.core.prompts import HIDDEN_SYSTEM_PROMPT_SUFFIX, KB_BLOCK_HEADER, render_external_prompt


PROMPT = "You are Ava, the booking assistant for Acme Travel."


async def create_agent(client, headers, prompt=PROMPT):
    response = await client.post("/api/v1/agents", json={"name": "Ava", "system_prompt": prompt}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["agent"]


def stored_files(storage):
    root = Path(storage.root)
    return [p for p in root.rglob("*") if p.is_file()] if root.exists() else []


async def test_document_lifecycle(client, admin_headers, vapi_server, storage):
    agent = await create_agent(client, admin_headers)
    assistant_id = agent["vapi_assistant_id"]
    base = f"/api/v1/agents/{agent['id']}/documents"

    response = await client.post(
        base, files={"file": ("faq.txt", b"Check-in opens at 3pm.", "text/plain")}, headers=admin_headers
    )
    assert response.status_code == 201, response.text
    data = response.json()
    assert data["file"]["file_name"] == "faq.txt"
    assert data["file"]["file_size"] == len(b"Check-in opens at 3pm.")
    assert data["knowledgeBase"]["action"] == "attached"
    tool_id = data["knowledgeBase"]["toolId"]

    # The stored prompt carries the block but never the operational suffix.
    detail = (await client.get(f"/api/v1/agents/{agent['id']}", headers=admin_headers)).json()["agent"]
    assert detail["system_prompt"].startswith(PROMPT + "\n\n" + KB_BLOCK_HEADER)
    assert HIDDEN_SYSTEM_PROMPT_SUFFIX not in detail["system_prompt"]
    live = vapi_server.assistants[assistant_id]["model"]
    assert live["toolIds"] == [tool_id]
    assert live["messages"][0]["content"] == render_external_prompt(detail["system_prompt"])

    listing = await client.get(base, headers=admin_headers)
    files = listing.json()["files"]
    assert len(files) == 1
    url = files[0]["url"]
    assert url.startswith("http://test/api/v1/storage/download?token=")

    download = await client.get(url)
    assert download.status_code == 200
    assert download.content == b"Check-in opens at 3pm."
    assert download.headers["content-disposition"] == 'attachment; filename="faq.txt"'

    response = await client.delete(base, params={"fileId": files[0]["id"]}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["knowledgeBase"]["action"] == "detached"

    detail = (await client.get(f"/api/v1/agents/{agent['id']}", headers=admin_headers)).json()["agent"]
    assert detail["system_prompt"] == PROMPT
    live = vapi_server.assistants[assistant_id]["model"]
    assert live["toolIds"] == []
    assert live["messages"][0]["content"] == render_external_prompt(PROMPT)
    assert vapi_server.files == {}
    assert stored_files(storage) == []

    assert (await client.get(base, headers=admin_headers)).json()["files"] == []


async def test_upload_too_large(client, admin_headers, agent):
    oversized = b"x" * (10 * 1024 * 1024 + 1)
    response = await client.post(
        f"/api/v1/agents/{agent['id']}/documents",
        files={"file": ("big.pdf", oversized, "application/pdf")},
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert response.json() == {"error": "File size exceeds 10MB limit"}


async def test_upload_empty_file(client, admin_headers, agent):
    response = await client.post(
        f"/api/v1/agents/{agent['id']}/documents",
        files={"file": ("empty.txt", b"", "text/plain")},
        headers=admin_headers,
    )
    assert response.status_code == 400


async def test_voice_platform_rejects_upload(client, admin_headers, agent, vapi_server, storage):
    vapi_server.fail["POST /file"] = 500

    response = await client.post(
        f"/api/v1/agents/{agent['id']}/documents",
        files={"file": ("faq.txt", b"content", "text/plain")},
        headers=admin_headers,
    )

    assert response.status_code == 502
    assert stored_files(storage) == []
    assert (await client.get(f"/api/v1/agents/{agent['id']}/documents", headers=admin_headers)).json()["files"] == []


async def test_signed_url_missing_object(client, admin_headers, agent, storage):
    await client.post(
        f"/api/v1/agents/{agent['id']}/documents",
        files={"file": ("faq.txt", b"content", "text/plain")},
        headers=admin_headers,
    )
    for path in stored_files(storage):
        path.unlink()

    files = (await client.get(f"/api/v1/agents/{agent['id']}/documents", headers=admin_headers)).json()["files"]
    assert files[0]["url"] is None


async def test_download_rejects_bad_token(client):
    response = await client.get("/api/v1/storage/download", params={"token": "garbage"})
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid or expired download link"}


async def test_delete_unknown_document(client, admin_headers, agent):
    response = await client.delete(
        f"/api/v1/agents/{agent['id']}/documents", params={"fileId": "missing"}, headers=admin_headers
    )
    assert response.status_code == 404


async def test_documents_are_scoped_to_organization(client, agent, other_org_headers):
    response = await client.get(f"/api/v1/agents/{agent['id']}/documents", headers=other_org_headers)
    assert response.status_code == 404
    assert response.json() == {"error": "Agent not found"}
