"""
AI Responder
Pluggable generators for AI draft replies.

Every responder honours one contract:
    await responder.generate(contact_id, last_message, prompt=None) -> str
Failures surface as ResponderError so the draft lifecycle can abandon the
pending draft instead of hanging.
"""
import json
import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence

from openai import AsyncOpenAI

from app.config import settings
from app.models.inbox import Prompt
from app.services.errors import ResponderError

logger = logging.getLogger(__name__)


class AIResponder(ABC):
    """Generates the text of an AI draft"""

    @abstractmethod
    async def generate(self, contact_id: str, last_message: str, prompt: Optional[Prompt] = None) -> str:
        """
        Produce a reply to the latest patient-side message.

        Args:
            contact_id: Contact UUID the reply is for
            last_message: Latest patient-side message content
            prompt: Active persona, if any

        Returns:
            Reply text

        Raises:
            ResponderError: If no reply could be produced
        """


@dataclass
class ReplyRule:
    """Reply used when any keyword occurs in the message (case-insensitive)"""
    keywords: List[str]
    reply: str

    def matches(self, text: str) -> bool:
        lowered = text.lower()
        return any(keyword.lower() in lowered for keyword in self.keywords)


class ScriptedResponder(AIResponder):
    """
    Keyword-driven canned replies.

    The first matching rule wins; otherwise a fallback reply is picked at
    random. Rules are data, loaded from SCRIPTED_REPLIES_PATH by default.
    """

    def __init__(
        self,
        rules: Sequence[ReplyRule],
        fallback: Sequence[str],
        rng: Optional[random.Random] = None
    ):
        self.rules = list(rules)
        self.fallback = list(fallback)
        self.rng = rng or random.Random()

    @classmethod
    def from_file(cls, path: str, rng: Optional[random.Random] = None) -> "ScriptedResponder":
        """
        Load rules from a JSON file with "rules" and "fallback" keys.

        Raises:
            ResponderError: If the file is missing or malformed
        """
        try:
            with open(path, encoding="utf-8") as fh:
                data = json.load(fh)
            rules = [ReplyRule(keywords=list(rule["keywords"]), reply=rule["reply"]) for rule in data.get("rules", [])]
            fallback = list(data.get("fallback", []))
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise ResponderError(f"Invalid scripted replies file {path}: {e}") from e

        logger.info(f"Loaded {len(rules)} scripted reply rules from {path}")
        return cls(rules, fallback, rng=rng)

    async def generate(self, contact_id: str, last_message: str, prompt: Optional[Prompt] = None) -> str:
        for rule in self.rules:
            if rule.matches(last_message or ""):
                return rule.reply

        if not self.fallback:
            raise ResponderError("No scripted reply matched and no fallback is configured")
        return self.rng.choice(self.fallback)


class OpenAIResponder(AIResponder):
    """Chat-completion replies shaped by the active persona"""

    def __init__(self, client: Optional[AsyncOpenAI] = None, model: Optional[str] = None):
        self.client = client or AsyncOpenAI(
            api_key=settings.OPENAI_API_KEY,
            base_url=settings.OPENAI_BASE_URL
        )
        self.model = model or settings.GPT_MODEL

    @staticmethod
    def build_system_message(prompt: Optional[Prompt]) -> str:
        if prompt is None:
            return "You are a helpful clinic assistant. Reply briefly in the patient's language."

        parts = [prompt.content.strip(), f"Your name is {prompt.assistant_name}."]
        if prompt.tone:
            parts.append(f"Use a {prompt.tone} tone.")
        return "\n".join(part for part in parts if part)

    async def generate(self, contact_id: str, last_message: str, prompt: Optional[Prompt] = None) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": self.build_system_message(prompt)},
                    {"role": "user", "content": last_message},
                ],
            )
            answer = (response.choices[0].message.content or "").strip()
        except Exception as e:
            logger.error(f"❌ OpenAI reply failed for contact {contact_id}: {e}")
            raise ResponderError(f"AI responder failed: {e}") from e

        if not answer:
            raise ResponderError("AI responder returned an empty reply")
        return answer


# Singleton instance
_ai_responder: Optional[AIResponder] = None


def get_ai_responder() -> AIResponder:
    """
    Get or create the configured AIResponder.

    Returns:
        OpenAIResponder when AI_RESPONDER=openai and OpenAI is configured,
        ScriptedResponder otherwise
    """
    global _ai_responder
    if _ai_responder is None:
        if settings.AI_RESPONDER == "openai":
            if settings.is_openai_configured:
                logger.info(f"🤖 Using OpenAI responder (model={settings.GPT_MODEL})")
                _ai_responder = OpenAIResponder()
            else:
                logger.warning("AI_RESPONDER=openai but OPENAI_API_KEY is missing; using scripted replies")
        if _ai_responder is None:
            _ai_responder = ScriptedResponder.from_file(settings.SCRIPTED_REPLIES_PATH)
    return _ai_responder
