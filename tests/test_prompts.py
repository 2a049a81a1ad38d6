"""Unit tests for system prompt composition."""

import pytest

from travelvoice.core.prompts import (
    DEFAULT_KB_INSTRUCTION,
    HIDDEN_SYSTEM_PROMPT_SUFFIX,
    KB_BLOCK_HEADER,
    append_knowledge_base_block,
    has_knowledge_base_block,
    knowledge_base_tool_name,
    render_external_prompt,
    strip_hidden_suffix,
    strip_knowledge_base_block,
)


class TestHiddenSuffix:
    """Tests for the operational suffix."""

    def test_render_appends_suffix(self):
        rendered = render_external_prompt("You are Ava.")
        assert rendered == "You are Ava." + HIDDEN_SYSTEM_PROMPT_SUFFIX
        assert "[Operational Protocol]" in rendered
        assert "[Voice Optimization Rules]" in rendered

    def test_render_empty_prompt(self):
        assert render_external_prompt(None) == HIDDEN_SYSTEM_PROMPT_SUFFIX
        assert render_external_prompt("") == HIDDEN_SYSTEM_PROMPT_SUFFIX

    def test_strip_recovers_visible_prompt(self):
        assert strip_hidden_suffix(render_external_prompt("You are Ava.")) == "You are Ava."
        assert strip_hidden_suffix("No suffix here") == "No suffix here"
        assert strip_hidden_suffix(None) == ""


class TestKnowledgeBaseBlock:
    """Tests for adding and removing the knowledge base block."""

    def test_append_to_prompt(self):
        prompt = append_knowledge_base_block("You are Ava.", "Search the brochures first.")
        assert prompt == f"You are Ava.\n\n{KB_BLOCK_HEADER}\nSearch the brochures first."
        assert has_knowledge_base_block(prompt)

    def test_append_to_empty_prompt(self):
        assert append_knowledge_base_block("", "Use it.") == f"{KB_BLOCK_HEADER}\nUse it."
        assert append_knowledge_base_block(None, "Use it.") == f"{KB_BLOCK_HEADER}\nUse it."

    def test_append_is_idempotent(self):
        once = append_knowledge_base_block("You are Ava.", "Use it.")
        twice = append_knowledge_base_block(once, "Use it.")
        assert twice == once
        assert twice.count(KB_BLOCK_HEADER) == 1

    def test_append_replaces_existing_instruction(self):
        old = append_knowledge_base_block("You are Ava.", "Old instruction.")
        new = append_knowledge_base_block(old, "New instruction.")
        assert "Old instruction." not in new
        assert new.endswith("New instruction.")

    def test_instruction_blank_lines_collapsed(self):
        prompt = append_knowledge_base_block("Base", "First line.\n\nSecond line.")
        assert prompt == f"Base\n\n{KB_BLOCK_HEADER}\nFirst line.\nSecond line."
        assert strip_knowledge_base_block(prompt) == "Base"

    def test_blank_instruction_uses_default(self):
        prompt = append_knowledge_base_block("Base", "   ")
        assert prompt.endswith(DEFAULT_KB_INSTRUCTION)

    def test_strip_trailing_block(self):
        prompt = f"You are Ava.\n\n{KB_BLOCK_HEADER}\nUse it."
        assert strip_knowledge_base_block(prompt) == "You are Ava."

    def test_strip_block_in_middle(self):
        prompt = f"Intro.\n\n{KB_BLOCK_HEADER}\nUse it.\n\nOutro."
        assert strip_knowledge_base_block(prompt) == "Intro.\n\nOutro."

    def test_strip_leading_block(self):
        prompt = f"{KB_BLOCK_HEADER}\nUse it.\n\nYou are Ava."
        assert strip_knowledge_base_block(prompt) == "You are Ava."

    def test_strip_without_block_leaves_prompt_untouched(self):
        assert strip_knowledge_base_block("You are Ava.\n") == "You are Ava.\n"
        assert strip_knowledge_base_block("Intro.\n\n\nOutro.  ") == "Intro.\n\n\nOutro.  "
        assert strip_knowledge_base_block(None) == ""
        assert not has_knowledge_base_block("You are Ava.")


def test_tool_name_is_derived_from_agent_id():
    assert knowledge_base_tool_name("1b2c-3d4e") == "kb_1b2c_3d4e"


class TestKnowledgeBaseRoundTrip:
    """Appending and then stripping the block gives back the original prompt."""

    @pytest.mark.parametrize(
        "prompt",
        [
            "You plan trips.",
            "You plan trips.\n",
            "You plan trips.\n\n",
            "  Indented start.\n\nSecond paragraph.\t\n",
            "",
        ],
    )
    def test_round_trip_is_exact(self, prompt):
        with_block = append_knowledge_base_block(prompt, "Use the KB.")
        assert strip_knowledge_base_block(with_block) == prompt

    def test_replacing_block_keeps_trailing_newline(self):
        first = append_knowledge_base_block("You plan trips.\n", "Old.")
        second = append_knowledge_base_block(first, "New.")
        assert second == f"You plan trips.\n\n\n{KB_BLOCK_HEADER}\nNew."
        assert strip_knowledge_base_block(second) == "You plan trips.\n"
