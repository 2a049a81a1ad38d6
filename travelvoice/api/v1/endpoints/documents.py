"""
Knowledge-base document endpoints
"""
import logging
import uuid
from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from travelvoice.core.config import settings
from travelvoice.core.database import get_db
from travelvoice.integrations.storage import FileStorage, get_storage
from travelvoice.integrations.vapi import VapiClient, get_vapi_client
from travelvoice.models import Agent, AgentFile
from travelvoice.schemas import AgentFileResponse
from travelvoice.services.ai_service import AIService, get_ai_service
from travelvoice.services.knowledge_base import sync_knowledge_base
from travelvoice.api.dependencies import get_org_agent

logger = logging.getLogger(__name__)
router = APIRouter()


def _storage_path(agent: Agent, filename: str) -> str:
    safe_name = filename.replace("/", "_").replace("\\", "_")
    return f"{agent.organization_id}/{agent.id}/{uuid.uuid4().hex}_{safe_name}"


@router.get("/{agent_id}/documents")
async def list_documents(
    agent: Agent = Depends(get_org_agent),
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
):
    """
    List an agent's documents with short-lived download links.
    """
    result = await db.execute(
        select(AgentFile).where(AgentFile.agent_id == agent.id).order_by(AgentFile.created_at)
    )
    files = []
    for agent_file in result.scalars().all():
        response = AgentFileResponse.model_validate(agent_file)
        try:
            response.url = storage.create_signed_url(agent_file.storage_path)
        except Exception as e:
            logger.warning(f"Could not sign download URL for {agent_file.storage_path}: {str(e)}")
            response.url = None
        files.append(response)
    return {"files": files}


@router.post("/{agent_id}/documents", status_code=status.HTTP_201_CREATED)
async def upload_document(
    file: UploadFile = File(...),
    agent: Agent = Depends(get_org_agent),
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
    vapi: VapiClient = Depends(get_vapi_client),
    ai: AIService = Depends(get_ai_service),
):
    """
    Upload a document to storage and the voice platform, record it and
    resync the agent's knowledge base.
    """
    content = await file.read()
    if len(content) > settings.max_file_size_bytes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File size exceeds {settings.MAX_FILE_SIZE_MB}MB limit"
        )
    if not content:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="File is empty"
        )

    filename = file.filename or "document"
    storage_path = _storage_path(agent, filename)

    try:
        await storage.upload(storage_path, content)
    except Exception as e:
        logger.error(f"Storage upload failed for {filename}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store file"
        )

    try:
        vapi_file = await vapi.upload_file(filename, content, file.content_type)
    except Exception as e:
        logger.error(f"Vapi file upload failed for {filename}: {str(e)}")
        await storage.delete(storage_path)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to upload file to voice platform"
        )

    try:
        agent_file = AgentFile(
            agent_id=agent.id,
            file_name=filename,
            file_type=file.content_type,
            file_size=len(content),
            storage_path=storage_path,
            vapi_file_id=vapi_file.get("id"),
        )
        db.add(agent_file)
        await db.commit()
    except Exception as e:
        logger.error(f"Failed to record document {filename}: {str(e)}", exc_info=True)
        await db.rollback()
        try:
            await vapi.delete_file(vapi_file.get("id"))
        except Exception as cleanup_error:
            logger.error(f"Failed to delete orphaned Vapi file {vapi_file.get('id')}: {cleanup_error}")
        await storage.delete(storage_path)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save file record"
        )

    sync = await sync_knowledge_base(db, agent, vapi, ai)
    logger.info(f"Uploaded {filename} for agent {agent.id}, knowledge base {sync.action}")

    return {
        "file": AgentFileResponse.model_validate(agent_file),
        "knowledgeBase": {"action": sync.action, "toolId": sync.tool_id},
    }


@router.delete("/{agent_id}/documents")
async def delete_document(
    file_id: str = Query(..., alias="fileId"),
    agent: Agent = Depends(get_org_agent),
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
    vapi: VapiClient = Depends(get_vapi_client),
    ai: AIService = Depends(get_ai_service),
):
    result = await db.execute(
        select(AgentFile).where(AgentFile.id == file_id, AgentFile.agent_id == agent.id)
    )
    agent_file = result.scalar_one_or_none()
    if agent_file is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="File not found"
        )

    if agent_file.vapi_file_id:
        try:
            await vapi.delete_file(agent_file.vapi_file_id)
        except Exception as e:
            logger.error(f"Failed to delete Vapi file {agent_file.vapi_file_id}: {str(e)}")

    try:
        await storage.delete(agent_file.storage_path)
    except Exception as e:
        logger.error(f"Failed to delete stored file {agent_file.storage_path}: {str(e)}")

    await db.delete(agent_file)
    await db.commit()

    sync = await sync_knowledge_base(db, agent, vapi, ai)
    logger.info(f"Deleted document {file_id} from agent {agent.id}, knowledge base {sync.action}")
    return {"success": True, "knowledgeBase": {"action": sync.action, "toolId": sync.tool_id}}
