"""Tests for assemble_context() block ordering."""

from discord_copilot.llm.context import SUMMARY_PREFIX, assemble_context


class TestAssembleContext:
    def test_without_summary_has_two_blocks(self):
        """No summary means system prompt plus the user message only."""
        messages = assemble_context("Be nice.", None, "Hello")
        assert messages == [
            {"role": "system", "content": "Be nice."},
            {"role": "user", "content": "Hello"},
        ]

    def test_with_summary_has_three_blocks_in_order(self):
        """The summary sits between the system prompt and the user message."""
        messages = assemble_context("Be nice.", "We talked about cats.", "And dogs?")
        assert [m["role"] for m in messages] == ["system", "user", "user"]
        assert messages[0]["content"] == "Be nice."
        assert messages[1]["content"] == f"{SUMMARY_PREFIX}We talked about cats."
        assert messages[2]["content"] == "And dogs?"

    def test_blank_summary_treated_as_absent(self):
        """A whitespace-only summary adds no block."""
        assert len(assemble_context("Be nice.", "", "Hello")) == 2
        assert len(assemble_context("Be nice.", "  \n\t", "Hello")) == 2

    def test_instructions_and_message_passed_verbatim(self):
        """No trimming or rewriting of the caller's text."""
        messages = assemble_context("  Rules:\n- be brief  ", None, "  spaced out  ")
        assert messages[0]["content"] == "  Rules:\n- be brief  "
        assert messages[-1]["content"] == "  spaced out  "

    def test_user_message_is_always_last(self):
        """The current message is the final block the model sees."""
        messages = assemble_context("sys", "summary", "final question")
        assert messages[-1] == {"role": "user", "content": "final question"}
