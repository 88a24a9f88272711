"""
Conversational help for members, backed by a langchain chat model.

Strictly request/response: one prompt in, one text out. Any model failure
falls back to canned text so the help command always answers.
"""

from typing import Optional

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate

from src.llm.factory import create_chat_model
from src.prompts.system_prompts import (
    DAO_ASSISTANT_SYSTEM,
    DEFAULT_HELP_FALLBACK,
    GROUP_MENTION_FALLBACK,
    GROUP_MENTION_INSTRUCTION,
    HELP_FALLBACKS,
    HELP_INSTRUCTION,
)
from src.utils.logger import logger


def _escape(text: str) -> str:
    return text.replace("{", "{{").replace("}", "}}")


def fallback_help(topic: str) -> str:
    key = (topic or "").strip().lower()
    for name, text in HELP_FALLBACKS.items():
        if key and (name in key or key in name):
            return text
    return DEFAULT_HELP_FALLBACK


class HelpAssistant:

    def __init__(self, llm: Optional[BaseChatModel] = None):
        self._llm = llm

    @property
    def llm(self) -> BaseChatModel:
        if self._llm is None:
            self._llm = create_chat_model()
        return self._llm

    async def _complete(self, instruction: str, variables: dict) -> str:
        prompt = ChatPromptTemplate.from_messages([
            ("system", _escape("\n".join(DAO_ASSISTANT_SYSTEM))),
            ("human", instruction),
        ])
        chain = prompt | self.llm | StrOutputParser()
        return (await chain.ainvoke(variables)).strip()

    async def generate_help(self, topic: str) -> str:
        topic = (topic or "").strip()[:200] or "getting started"
        try:
            text = await self._complete(HELP_INSTRUCTION, {"topic": topic})
        except Exception as e:
            logger.error("HelpAssistant: model call failed for topic %r: %s", topic, e)
            return fallback_help(topic)
        return text or fallback_help(topic)

    async def answer_group_mention(self, message: str, context: str = "") -> str:
        try:
            text = await self._complete(
                GROUP_MENTION_INSTRUCTION, {"message": (message or "")[:2000], "context": context or "n/a"},
            )
        except Exception as e:
            logger.error("HelpAssistant: model call failed for group mention: %s", e)
            return GROUP_MENTION_FALLBACK
        return text or GROUP_MENTION_FALLBACK
