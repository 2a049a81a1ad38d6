"""
System prompt composition for the voice platform.

The stored prompt is what the customer sees. Two things are layered on it:

* a ``[Knowledge Base Access]`` block, kept in the stored prompt while the
  agent has documents, telling the model to use its knowledge-base tool;
* the hidden operational suffix, added only when the prompt is sent out.
"""
import re
from typing import Optional

HIDDEN_SYSTEM_PROMPT_SUFFIX = """
[Operational Protocol]
- You are representing our business professionally.
- Always remain polite, patient, and helpful.
- If the user asks about sensitive internal data, politely decline.
- Maintain the persona defined above but adhere to these operational guardrails.

[Voice Optimization Rules]
- Your response will be converted to speech. optimize for audio delivery.
- **Numbers**: Write out small numbers and currencies in full words for clarity (e.g., "twenty-five dollars" instead of "$25", "one hundred" instead of "100"). For years or phone numbers, standard digits are acceptable if the TTS engine handles them well, but prefer "twenty twenty-four" for 2024.
- **Formatting**: Avoid markdown lists, tables, or complex formatting. Use full sentences.
- **Pacing**: Use commas and periods to control pacing. Avoid long, run-on sentences.
- **Abbreviations**: Avoid obscure abbreviations. Spell out "Corporation" instead of "Corp.", "Street" instead of "St.".
- **Filler Words**: Use natural conversational fillers sparingly (e.g., "well," "you know") only if it fits the persona, but avoid robotic repetition.
- **Tone**: Be warm and engaging, not robotic.
"""

KB_BLOCK_HEADER = "[Knowledge Base Access]"

DEFAULT_KB_TOOL_DESCRIPTION = "Search the knowledge base for answers to user questions."
DEFAULT_KB_DESCRIPTION = (
    "Contains information about products, services, policies, and other relevant documentation."
)
DEFAULT_KB_INSTRUCTION = (
    "You have access to a knowledge base containing the business's uploaded documents. "
    "When the caller asks about products, services, prices or policies, search the "
    "knowledge base before answering and base your answer on what you find."
)

# A block is its header line plus the non-blank lines under it. It is
# appended after exactly one separator, which stripping removes again.
_KB_SEPARATOR = "\n\n"
_KB_BLOCK_RE = re.compile(
    r"(?P<lead>\n\n)?"
    + re.escape(KB_BLOCK_HEADER)
    + r"[^\n]*(?:\n[^\n]*\S[^\n]*)*"
    + r"(?P<trail>\n\n)?"
)
_BLANK_LINES_RE = re.compile(r"\n[ \t]*\n+")


def _drop_block(match: "re.Match[str]") -> str:
    # A block opening the prompt also takes the blank line that follows it.
    if match.group("lead"):
        return match.group("trail") or ""
    return ""


def render_external_prompt(visible_prompt: Optional[str]) -> str:
    """Prompt as sent to the voice platform. Never persist the result."""
    return f"{visible_prompt or ''}{HIDDEN_SYSTEM_PROMPT_SUFFIX}"


def strip_hidden_suffix(prompt: Optional[str]) -> str:
    if not prompt:
        return ""
    if prompt.endswith(HIDDEN_SYSTEM_PROMPT_SUFFIX):
        return prompt[: -len(HIDDEN_SYSTEM_PROMPT_SUFFIX)]
    return prompt


def has_knowledge_base_block(prompt: Optional[str]) -> bool:
    return bool(prompt) and KB_BLOCK_HEADER in prompt


def strip_knowledge_base_block(prompt: Optional[str]) -> str:
    if not prompt:
        return ""
    return _KB_BLOCK_RE.sub(_drop_block, prompt)


def append_knowledge_base_block(prompt: Optional[str], instruction: str) -> str:
    base = strip_knowledge_base_block(prompt)
    body = _BLANK_LINES_RE.sub("\n", instruction.strip()) or DEFAULT_KB_INSTRUCTION
    block = f"{KB_BLOCK_HEADER}\n{body}"
    if not base:
        return block
    return f"{base}{_KB_SEPARATOR}{block}"


def knowledge_base_tool_name(agent_id: str) -> str:
    return f"kb_{agent_id.replace('-', '_')}"
