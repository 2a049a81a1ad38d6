"""
Knowledge-base synchronization between an agent's uploaded documents and
its voice platform assistant.

After every document change the agent's query tool is created, updated or
detached, the ``[Knowledge Base Access]`` block of the stored prompt is
rewritten, and the assistant is patched with the rendered prompt and tool ids.
The database write and the platform write are separate steps; a failed
platform write is logged and picked up by the next document change.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from travelvoice.core.prompts import (
    DEFAULT_KB_DESCRIPTION,
    DEFAULT_KB_INSTRUCTION,
    DEFAULT_KB_TOOL_DESCRIPTION,
    append_knowledge_base_block,
    has_knowledge_base_block,
    knowledge_base_tool_name,
    render_external_prompt,
    strip_knowledge_base_block,
)
from travelvoice.integrations.vapi import VapiClient, current_model_settings
from travelvoice.models import Agent, AgentFile
from travelvoice.services.ai_service import AIService

logger = logging.getLogger(__name__)

KB_PROVIDER = "google"
KB_NAME = "default-kb"


@dataclass
class KnowledgeBaseSyncResult:
    action: str  # skipped, attached, detached, unchanged, failed
    tool_id: Optional[str] = None
    prompt: Optional[str] = None
    pushed: bool = False


def _tool_file_ids(tool: Dict[str, Any]) -> List[str]:
    file_ids: List[str] = []
    for kb in tool.get("knowledgeBases") or []:
        file_ids.extend(kb.get("fileIds") or [])
    return file_ids


def _dedupe(ids: List[str]) -> List[str]:
    return list(dict.fromkeys(i for i in ids if i))


class KnowledgeBaseSynchronizer:
    """Keeps one agent's query tool and prompt block in step with its documents."""

    def __init__(self, db: AsyncSession, vapi: VapiClient, ai: Optional[AIService] = None):
        self.db = db
        self.vapi = vapi
        self.ai = ai

    async def _generate_texts(self, agent_name: str, file_names: List[str]) -> Dict[str, str]:
        texts = {
            "tool_description": DEFAULT_KB_TOOL_DESCRIPTION,
            "prompt_instruction": DEFAULT_KB_INSTRUCTION,
        }
        if self.ai is None or not self.ai.available:
            return texts
        try:
            generated = await self.ai.describe_knowledge_base(agent_name, file_names)
        except Exception as e:
            logger.warning(f"Knowledge base text generation failed, using defaults: {e}")
            return texts
        for key, value in generated.items():
            if value:
                texts[key] = value
        return texts

    async def _persist_prompt(self, agent: Agent, prompt: str) -> bool:
        if prompt == (agent.system_prompt or ""):
            return False
        agent.system_prompt = prompt
        await self.db.commit()
        return True

    async def _push(self, agent: Agent, prompt: str, tool_ids: List[str], assistant: Dict[str, Any]) -> bool:
        try:
            await self.vapi.update_assistant(
                agent.vapi_assistant_id,
                system_prompt=render_external_prompt(prompt),
                tool_ids=tool_ids,
                **current_model_settings(assistant),
            )
            return True
        except Exception as e:
            logger.error(f"Failed to push knowledge base config for agent {agent.id}: {e}")
            return False

    async def sync(self, agent: Agent) -> KnowledgeBaseSyncResult:
        if not agent.vapi_assistant_id:
            return KnowledgeBaseSyncResult(action="skipped", prompt=agent.system_prompt)

        result = await self.db.execute(
            select(AgentFile).where(AgentFile.agent_id == agent.id).order_by(AgentFile.created_at)
        )
        files = result.scalars().all()
        file_ids = _dedupe([f.vapi_file_id for f in files])
        file_names = [f.file_name for f in files]

        try:
            assistant = await self.vapi.get_assistant(agent.vapi_assistant_id) or {}
            tools = await self.vapi.list_tools()
        except Exception as e:
            logger.error(f"Failed to fetch assistant {agent.vapi_assistant_id} for knowledge base sync: {e}")
            return KnowledgeBaseSyncResult(action="failed", prompt=agent.system_prompt)

        current_tool_ids = list((assistant.get("model") or {}).get("toolIds") or [])
        tool_name = knowledge_base_tool_name(agent.id)
        existing_tool = next(
            (
                tool for tool in tools
                if tool.get("type") == "query" and (tool.get("function") or {}).get("name") == tool_name
            ),
            None,
        )

        if not file_ids:
            return await self._detach(agent, assistant, existing_tool, current_tool_ids)
        return await self._attach(agent, assistant, existing_tool, current_tool_ids, file_ids, file_names)

    async def _detach(
        self,
        agent: Agent,
        assistant: Dict[str, Any],
        existing_tool: Optional[Dict[str, Any]],
        current_tool_ids: List[str],
    ) -> KnowledgeBaseSyncResult:
        cleaned = strip_knowledge_base_block(agent.system_prompt)
        prompt_changed = await self._persist_prompt(agent, cleaned)
        tool_id = existing_tool["id"] if existing_tool else None

        if tool_id is None and not prompt_changed:
            return KnowledgeBaseSyncResult(action="unchanged", prompt=cleaned)

        new_tool_ids = [i for i in current_tool_ids if i != tool_id]
        pushed = await self._push(agent, cleaned, new_tool_ids, assistant)
        logger.info(f"Detached knowledge base from agent {agent.id}")
        return KnowledgeBaseSyncResult(action="detached", tool_id=tool_id, prompt=cleaned, pushed=pushed)

    async def _attach(
        self,
        agent: Agent,
        assistant: Dict[str, Any],
        existing_tool: Optional[Dict[str, Any]],
        current_tool_ids: List[str],
        file_ids: List[str],
        file_names: List[str],
    ) -> KnowledgeBaseSyncResult:
        up_to_date = (
            existing_tool is not None
            and set(_tool_file_ids(existing_tool)) == set(file_ids)
            and has_knowledge_base_block(agent.system_prompt)
        )

        if up_to_date:
            tool_id = existing_tool["id"]
            prompt = agent.system_prompt
        else:
            texts = await self._generate_texts(agent.name, file_names)
            knowledge_bases = [
                {
                    "provider": KB_PROVIDER,
                    "name": KB_NAME,
                    "description": DEFAULT_KB_DESCRIPTION,
                    "fileIds": file_ids,
                }
            ]
            function = {"name": knowledge_base_tool_name(agent.id), "description": texts["tool_description"]}
            try:
                if existing_tool is not None:
                    await self.vapi.update_tool(
                        existing_tool["id"], {"function": function, "knowledgeBases": knowledge_bases}
                    )
                    tool_id = existing_tool["id"]
                else:
                    created = await self.vapi.create_tool(
                        {"type": "query", "function": function, "knowledgeBases": knowledge_bases}
                    )
                    tool_id = created["id"]
            except Exception as e:
                logger.error(f"Failed to write knowledge base tool for agent {agent.id}: {e}")
                return KnowledgeBaseSyncResult(action="failed", prompt=agent.system_prompt)

            prompt = append_knowledge_base_block(agent.system_prompt, texts["prompt_instruction"])
            await self._persist_prompt(agent, prompt)

        if up_to_date and tool_id in current_tool_ids:
            return KnowledgeBaseSyncResult(action="unchanged", tool_id=tool_id, prompt=prompt)

        pushed = await self._push(agent, prompt, _dedupe(current_tool_ids + [tool_id]), assistant)
        logger.info(f"Attached knowledge base tool {tool_id} with {len(file_ids)} file(s) to agent {agent.id}")
        return KnowledgeBaseSyncResult(action="attached", tool_id=tool_id, prompt=prompt, pushed=pushed)


async def sync_knowledge_base(
    db: AsyncSession,
    agent: Agent,
    vapi: VapiClient,
    ai: Optional[AIService] = None,
) -> KnowledgeBaseSyncResult:
    return await KnowledgeBaseSynchronizer(db, vapi, ai).sync(agent)
