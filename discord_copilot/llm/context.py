"""
Context assembly for chat replies.

Builds the ordered message list sent to the model. The order is strict:

    1. system instructions (verbatim)
    2. prior conversation summary, only when present and non-blank
    3. the current user message

Nothing is reordered, merged or dropped apart from the optional summary block.
"""

from __future__ import annotations

SUMMARY_PREFIX = "Previous conversation context: "


def assemble_context(
    system_instructions: str,
    prior_summary: str | None,
    user_message: str,
) -> list[dict[str, str]]:
    """
    Build role-tagged messages for a chat completion.

    Example:
        >>> assemble_context("You are helpful.", "User asked about weather.", "And tomorrow?")
        [{'role': 'system', 'content': 'You are helpful.'},
         {'role': 'user', 'content': 'Previous conversation context: User asked about weather.'},
         {'role': 'user', 'content': 'And tomorrow?'}]
    """
    messages = [{"role": "system", "content": system_instructions}]

    if prior_summary is not None and prior_summary.strip():
        messages.append({"role": "user", "content": f"{SUMMARY_PREFIX}{prior_summary}"})

    messages.append({"role": "user", "content": user_message})
    return messages
