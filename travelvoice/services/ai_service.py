"""
Language-model text generation with multi-provider support
"""
import json
import logging
from typing import Dict, List, Optional

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from travelvoice.core.config import settings

logger = logging.getLogger(__name__)


class AIService:
    """JSON-mode completions against OpenAI, falling back to Claude."""

    def __init__(self):
        self.openai_client = None
        if settings.OPENAI_API_KEY:
            self.openai_client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY)

        self.anthropic_client = None
        if settings.ANTHROPIC_API_KEY:
            self.anthropic_client = AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY)

        self.primary_provider = settings.AI_PROVIDER

    @property
    def available(self) -> bool:
        return self.openai_client is not None or self.anthropic_client is not None

    async def complete_json(self, system: str, user: str, provider: Optional[str] = None) -> Dict:
        """
        Ask for a JSON object and return it parsed.
        Raises when no provider is configured or every provider fails.
        """
        provider = provider or self.primary_provider

        try:
            if provider == "openai" and self.openai_client:
                return await self._complete_openai(system, user)
            elif provider == "anthropic" and self.anthropic_client:
                return await self._complete_claude(system, user)
            else:
                raise ValueError(f"Provider {provider} not configured")
        except Exception as e:
            logger.error(f"Completion failed with {provider}: {e}")
            # Fallback
            if provider != "anthropic" and self.anthropic_client:
                logger.info("Falling back to Claude")
                return await self._complete_claude(system, user)
            elif provider != "openai" and self.openai_client:
                logger.info("Falling back to OpenAI")
                return await self._complete_openai(system, user)
            raise

    async def _complete_openai(self, system: str, user: str) -> Dict:
        response = await self.openai_client.chat.completions.create(
            model=settings.OPENAI_MODEL,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            response_format={"type": "json_object"},
        )
        content = response.choices[0].message.content
        if not content:
            raise ValueError("Empty completion")
        return json.loads(content)

    async def _complete_claude(self, system: str, user: str) -> Dict:
        message = await self.anthropic_client.messages.create(
            model=settings.ANTHROPIC_MODEL,
            max_tokens=2048,
            system=system,
            messages=[{"role": "user", "content": f"{user}\n\nReturn ONLY the JSON object, no additional text."}],
        )
        response_text = message.content[0].text

        # Extract JSON from markdown code blocks if present
        if "```json" in response_text:
            response_text = response_text.split("```json")[1].split("```")[0]
        elif "```" in response_text:
            response_text = response_text.split("```")[1].split("```")[0]

        return json.loads(response_text.strip())

    async def generate_agent_prompt(
        self,
        agent_role: str,
        primary_goal: str,
        company_name: Optional[str] = None,
        key_info: Optional[str] = None,
    ) -> Dict[str, str]:
        """Draft a system prompt and first message for a new agent."""
        system = f"""
You are an expert in creating system prompts for voice AI agents.
Your task is to generate a detailed, structured prompt based on the user's requirements.
The prompt must be divided into the following sections: PERSONALITY, ENVIRONMENT, TONE, GOAL, and GUARDRAILS.

**User Requirements:**
- **Agent Role**: {agent_role}
- **Primary Goal**: {primary_goal}
- **Company Name**: {company_name or 'the company'}
- **Key Information**: {key_info or 'Not provided'}

**Instructions for the AI Agent (to be included in the generated prompt)**:
- Must be conversational and sound human.
- Must handle numbers, dates, and acronyms in a natural way (e.g., pronounce '$500' as 'five hundred dollars').
- Must have clear error handling and know when to escalate to a human.

Generate a comprehensive system prompt and a suitable first message for the voice AI agent.
Respond with a JSON object with the keys "system_prompt" and "first_message".
"""
        result = await self.complete_json(system, "Please generate the system prompt and first message.")
        return {
            "system_prompt": result.get("system_prompt", ""),
            "first_message": result.get("first_message", ""),
        }

    async def describe_knowledge_base(self, agent_name: str, file_names: List[str]) -> Dict[str, str]:
        """Tool description and prompt instruction for an agent's document set."""
        system = (
            "You write configuration text for a voice assistant's knowledge-base search tool. "
            'Respond with a JSON object with the keys "tool_description" (one sentence telling the '
            'model when to call the search tool) and "prompt_instruction" (two or three sentences, '
            "no blank lines, telling the assistant how to use the knowledge base in conversation)."
        )
        user = f"Assistant name: {agent_name}\nDocuments: {', '.join(file_names)}"
        result = await self.complete_json(system, user)
        return {
            "tool_description": str(result.get("tool_description") or "").strip(),
            "prompt_instruction": str(result.get("prompt_instruction") or "").strip(),
        }


_ai_service: Optional[AIService] = None


def get_ai_service() -> AIService:
    """FastAPI dependency returning the shared AI service."""
    global _ai_service
    if _ai_service is None:
        _ai_service = AIService()
    return _ai_service
