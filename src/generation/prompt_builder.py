"""
Prompt Builder Module

Turns a single user string, or an ordered chat message sequence, plus a
configuration's prompt template into the one prompt string the inference
engine accepts.

Components:
    - USER_INPUT_MARKER: Substitution marker inside prompt templates.
    - DEFAULT_SYSTEM_PROMPT: Preamble used when no system message is given.
    - build_generate_prompt: Single-turn prompt assembly.
    - flatten_messages: Collapses a conversation into (system preamble, user turn).
    - build_chat_prompt: Multi-turn prompt assembly.
"""

from collections.abc import Iterable, Mapping
from typing import Any

from src.core.configurations import USER_INPUT_MARKER

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."

ASSISTANT_PREFIX = "Assistant: "
USER_PREFIX = "User: "


def format_default_prompt(user_text: str, system_prompt: str = DEFAULT_SYSTEM_PROMPT) -> str:
    """Fixed three-part template: system preamble, user turn, assistant turn marker."""
    return f"<|system|>\n{system_prompt}\n<|user|>\n{user_text}\n<|assistant|>\n"


def build_generate_prompt(user_input: str, template: str | None = None) -> str:
    """
    Build a single-turn prompt.

    Args:
        user_input: The user's prompt text
        template: Configuration prompt template; every marker is replaced

    Returns:
        Inference-ready prompt string
    """
    if template:
        return template.replace(USER_INPUT_MARKER, user_input)
    return format_default_prompt(user_input)


def _role_and_content(message: Any) -> tuple[str, str]:
    if isinstance(message, Mapping):
        role, content = message.get("role"), message.get("content")
    else:
        role, content = getattr(message, "role", None), getattr(message, "content", None)
    return role or "", content or ""


def flatten_messages(messages: Iterable[Any]) -> tuple[str, str]:
    """
    Collapse a conversation into a system preamble and one user turn.

    The engine takes a single prompt per call, so earlier assistant replies are
    kept inline in the user turn as "Assistant: ...\\nUser: " markers.

        - system: replaces the preamble (last one wins)
        - user: appended, newline-separated
        - assistant: appends "\\nAssistant: <content>\\nUser: "
          (a leading assistant message is kept, with no newline before it)
        - any other role is ignored

    Args:
        messages: Ordered messages with ``role`` and ``content`` (objects or dicts)

    Returns:
        (system_prompt, user_turn)
    """
    system_prompt = DEFAULT_SYSTEM_PROMPT
    user_turn = ""
    after_assistant = False

    for message in messages:
        role, content = _role_and_content(message)

        if role == "system":
            system_prompt = content
        elif role == "user":
            # The assistant marker already ends with "User: "
            if user_turn and not after_assistant:
                user_turn += "\n"
            user_turn += content
            after_assistant = False
        elif role == "assistant":
            if user_turn:
                user_turn += "\n"
            user_turn += f"{ASSISTANT_PREFIX}{content}\n{USER_PREFIX}"
            after_assistant = True

    return system_prompt, user_turn


def build_chat_prompt(messages: Iterable[Any], template: str | None = None) -> str:
    """
    Build a multi-turn prompt.

    The template is used only when it contains the marker; otherwise the fixed
    three-part template carries the final system preamble.
    """
    system_prompt, user_turn = flatten_messages(messages)

    if template and USER_INPUT_MARKER in template:
        return template.replace(USER_INPUT_MARKER, user_turn)
    return format_default_prompt(user_turn, system_prompt)
