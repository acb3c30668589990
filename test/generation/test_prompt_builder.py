"""
Tests for prompt assembly (src.generation.prompt_builder).
"""

import pytest

from backend.models.ollama import ChatMessage
from src.generation.prompt_builder import (
    DEFAULT_SYSTEM_PROMPT,
    build_chat_prompt,
    build_generate_prompt,
    flatten_messages,
    format_default_prompt,
)


class TestGeneratePrompt:
    """Test single-turn prompt building."""

    def test_template_substitution(self):
        template = "<|user|>\n{USER_INPUT}\n<|assistant|>\n"
        assert build_generate_prompt("Hi", template) == "<|user|>\nHi\n<|assistant|>\n"

    def test_every_marker_replaced(self):
        assert build_generate_prompt("x", "{USER_INPUT} and {USER_INPUT}") == "x and x"

    def test_template_without_marker_used_verbatim(self):
        assert build_generate_prompt("ignored", "Tell me a joke.") == "Tell me a joke."

    @pytest.mark.parametrize("template", [None, ""])
    def test_no_template_falls_back_to_default(self, template):
        assert build_generate_prompt("Hi", template) == (
            f"<|system|>\n{DEFAULT_SYSTEM_PROMPT}\n<|user|>\nHi\n<|assistant|>\n"
        )


class TestFlattenMessages:
    """Test conversation flattening."""

    def test_documented_conversation(self):
        """Test the system/user/assistant/user reference case."""
        messages = [
            {"role": "system", "content": "S"},
            {"role": "user", "content": "A"},
            {"role": "assistant", "content": "B"},
            {"role": "user", "content": "C"},
        ]

        system_prompt, user_turn = flatten_messages(messages)

        assert system_prompt == "S"
        assert user_turn == "A\nAssistant: B\nUser: C"

    def test_consecutive_user_messages(self):
        _, user_turn = flatten_messages([{"role": "user", "content": "A"}, {"role": "user", "content": "B"}])
        assert user_turn == "A\nB"

    def test_last_system_message_wins(self):
        system_prompt, _ = flatten_messages(
            [{"role": "system", "content": "first"}, {"role": "user", "content": "A"}, {"role": "system", "content": "second"}]
        )
        assert system_prompt == "second"

    def test_default_system_prompt(self):
        system_prompt, _ = flatten_messages([{"role": "user", "content": "A"}])
        assert system_prompt == DEFAULT_SYSTEM_PROMPT

    def test_leading_assistant_message(self):
        _, user_turn = flatten_messages([{"role": "assistant", "content": "B"}, {"role": "user", "content": "C"}])
        assert user_turn == "Assistant: B\nUser: C"

    def test_unknown_roles_ignored(self):
        _, user_turn = flatten_messages([{"role": "tool", "content": "x"}, {"role": "user", "content": "A"}, {}])
        assert user_turn == "A"

    def test_accepts_message_objects(self):
        messages = [ChatMessage(role="system", content="S"), ChatMessage(role="user", content="A")]
        assert flatten_messages(messages) == ("S", "A")


class TestChatPrompt:
    """Test multi-turn prompt building."""

    def test_template_with_marker(self):
        prompt = build_chat_prompt([{"role": "user", "content": "A"}], "[INST] {USER_INPUT} [/INST]")
        assert prompt == "[INST] A [/INST]"

    def test_template_without_marker_falls_back(self):
        prompt = build_chat_prompt(
            [{"role": "system", "content": "S"}, {"role": "user", "content": "A"}], "no marker here"
        )
        assert prompt == format_default_prompt("A", "S")

    def test_no_template(self):
        prompt = build_chat_prompt([{"role": "user", "content": "A"}])
        assert prompt == f"<|system|>\n{DEFAULT_SYSTEM_PROMPT}\n<|user|>\nA\n<|assistant|>\n"
