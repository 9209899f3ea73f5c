"""Tests for the OpenAI chat-completions provider."""

import unittest
from unittest.mock import AsyncMock, MagicMock, patch

import openai

from mcpilot.errors import ProviderError
from mcpilot.models import Message, MessageType, Session
from mcpilot.providers.openai import OpenAIProvider


def _completion(text, completion_id="chatcmpl-1"):
    completion = MagicMock()
    completion.id = completion_id
    completion.model = "gpt-4o-2024-08-06"
    completion.choices = [MagicMock()]
    completion.choices[0].message.content = text
    completion.usage.prompt_tokens = 10
    completion.usage.completion_tokens = 5
    completion.usage.total_tokens = 15
    return completion


def _session():
    session = Session.create("You are helpful.")
    session = session.with_message(Message.create(MessageType.USER, "hi"))
    session = session.with_message(Message.create(MessageType.ASSISTANT, "hello"))
    return session.with_message(Message.create(MessageType.SYSTEM, "Tool call limit reached"))


class TestOpenAIProvider(unittest.IsolatedAsyncioTestCase):
    def test_format_messages(self):
        assert OpenAIProvider.format_messages(_session()) == [
            {"role": "system", "content": "You are helpful."},
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
            {"role": "system", "content": "Tool call limit reached"},
        ]

    def test_format_messages_skips_blank_system_prompt(self):
        session = Session.create("   ").with_message(Message.create(MessageType.USER, "hi"))
        assert OpenAIProvider.format_messages(session) == [{"role": "user", "content": "hi"}]

    @patch("mcpilot.providers.openai.openai.AsyncOpenAI")
    def test_falls_back_to_configuration(self, mock_client_class):
        provider = OpenAIProvider()

        assert provider.api_key == "test-key"
        assert provider.model == "gpt-4o"
        mock_client_class.assert_called_once_with(api_key="test-key")

    @patch("mcpilot.providers.openai.openai.AsyncOpenAI")
    async def test_process_message(self, mock_client_class):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=_completion("Hi there"))
        mock_client_class.return_value = client

        provider = OpenAIProvider(api_key="k", model="gpt-4o-mini")
        response = await provider.process_message(_session())

        self.assertEqual(response.id, "chatcmpl-1")
        self.assertEqual(response.text, "Hi there")
        self.assertEqual(response.model, "gpt-4o-2024-08-06")
        self.assertEqual(response.usage["total_tokens"], 15)
        kwargs = client.chat.completions.create.await_args.kwargs
        self.assertEqual(kwargs["model"], "gpt-4o-mini")
        self.assertEqual(len(kwargs["messages"]), 4)

    @patch("mcpilot.providers.openai.openai.AsyncOpenAI")
    async def test_empty_choices_yield_no_text(self, mock_client_class):
        completion = _completion(None)
        completion.choices = []
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=completion)
        mock_client_class.return_value = client

        response = await OpenAIProvider(api_key="k").process_message(_session())

        self.assertIsNone(response.text)

    @patch("mcpilot.providers.openai.openai.AsyncOpenAI")
    async def test_api_error_becomes_provider_error(self, mock_client_class):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(side_effect=openai.OpenAIError("rate limited"))
        mock_client_class.return_value = client

        with self.assertRaises(ProviderError) as cm:
            await OpenAIProvider(api_key="k").process_message(_session())

        self.assertEqual(cm.exception.code, "PROVIDER_ERROR")
        self.assertIn("rate limited", str(cm.exception))

    async def test_missing_api_key(self):
        with patch("mcpilot.providers.openai.get_config") as mock_get_config:
            mock_get_config.return_value.openai_api_key = None
            mock_get_config.return_value.openai_model = "gpt-4o"
            provider = OpenAIProvider()

        with self.assertRaisesRegex(ProviderError, "OPENAI_API_KEY is not set"):
            await provider.process_message(_session())
