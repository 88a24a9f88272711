"""Tests for HelpAssistant with a fake chat model."""
import asyncio
from unittest.mock import AsyncMock, patch

from langchain_core.language_models.fake_chat_models import FakeListChatModel

from src.prompts.system_prompts import DEFAULT_HELP_FALLBACK, GROUP_MENTION_FALLBACK, HELP_FALLBACKS
from src.services.help_assistant import HelpAssistant, fallback_help


class TestFallbackHelp:

    def test_known_topic(self):
        assert fallback_help("How does voting work?") == HELP_FALLBACKS["voting"]

    def test_unknown_topic(self):
        assert fallback_help("weather") == DEFAULT_HELP_FALLBACK
        assert fallback_help("") == DEFAULT_HELP_FALLBACK


class TestHelpAssistant:

    def test_generate_help_returns_model_text(self):
        assistant = HelpAssistant(llm=FakeListChatModel(responses=["  Use /vote to vote.  "]))
        assert asyncio.run(assistant.generate_help("voting")) == "Use /vote to vote."

    def test_braces_in_topic_do_not_break_prompt(self):
        assistant = HelpAssistant(llm=FakeListChatModel(responses=["ok"]))
        assert asyncio.run(assistant.generate_help("what is {proposal_id}?")) == "ok"

    def test_model_failure_falls_back(self):
        assistant = HelpAssistant(llm=FakeListChatModel(responses=["unused"]))
        with patch.object(assistant, "_complete", AsyncMock(side_effect=RuntimeError("quota"))):
            assert asyncio.run(assistant.generate_help("tokens")) == HELP_FALLBACKS["tokens"]

    def test_empty_answer_falls_back(self):
        assistant = HelpAssistant(llm=FakeListChatModel(responses=["   "]))
        assert asyncio.run(assistant.generate_help("wallet")) == HELP_FALLBACKS["wallet"]

    def test_group_mention(self):
        assistant = HelpAssistant(llm=FakeListChatModel(responses=["Proposal 1 is active."]))
        text = asyncio.run(assistant.answer_group_mention("what's open?", context="1 active proposal"))
        assert text == "Proposal 1 is active."

    def test_group_mention_failure(self):
        assistant = HelpAssistant(llm=FakeListChatModel(responses=["unused"]))
        with patch.object(assistant, "_complete", AsyncMock(side_effect=TimeoutError())):
            assert asyncio.run(assistant.answer_group_mention("hi")) == GROUP_MENTION_FALLBACK
