"""
Generative replies for SmartAI automations.

Gemini is the primary provider. OpenAI is used when Gemini returns
nothing usable, and for the one-shot replies of legacy listeners.
"""
import logging
import os
from typing import Dict, List, Optional

import google.generativeai as genai
from openai import AsyncOpenAI

from replyflow.exceptions import AIGenerationError

logger = logging.getLogger(__name__)

GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")

FALLBACK_INSTRUCTION = "Keep your response under 2 sentences."


def persona_prompt(creator_persona: str) -> str:
    return (
        "You are responding as a social media creator/business owner on Instagram DMs.\n\n"
        f"{creator_persona}\n\n"
        "Guidelines:\n"
        "- Keep responses friendly, natural, and conversational\n"
        "- Stay in character as the creator\n"
        "- Be helpful and engage authentically\n"
        "- Keep responses concise (1-3 sentences typically)\n"
        "- Never mention that you are an AI unless asked directly"
    )


def flatten_prompt(system_prompt: str, user_text: str, history: List[Dict[str, str]]) -> str:
    prompt = f"{system_prompt}\n\n"
    if history:
        prompt += "Previous conversation:\n"
        for turn in history:
            label = "User" if turn["role"] == "user" else "You"
            prompt += f"{label}: {turn['content']}\n"
        prompt += "\n"
    prompt += f"User's current message: {user_text}\n\nYour response:"
    return prompt


class SmartAIService:
    def __init__(
        self,
        gemini_api_key: Optional[str] = GEMINI_API_KEY,
        openai_api_key: Optional[str] = OPENAI_API_KEY,
        gemini_model: str = GEMINI_MODEL,
        openai_model: str = OPENAI_MODEL,
    ):
        self.gemini_api_key = gemini_api_key
        self.openai_api_key = openai_api_key
        self.gemini_model = gemini_model
        self.openai_model = openai_model
        self._gemini = None

    def _get_gemini_model(self):
        if self._gemini is None:
            genai.configure(api_key=self.gemini_api_key)
            self._gemini = genai.GenerativeModel(self.gemini_model)
            logger.info("Initialized Gemini model: %s", self.gemini_model)
        return self._gemini

    async def _generate_gemini(self, system_prompt: str, user_text: str,
                               history: List[Dict[str, str]]) -> Optional[str]:
        if not self.gemini_api_key:
            logger.warning("⚠️ GEMINI_API_KEY is not configured, skipping Gemini")
            return None
        try:
            model = self._get_gemini_model()
            response = await model.generate_content_async(flatten_prompt(system_prompt, user_text, history))
            text = (response.text or "").strip()
            return text or None
        except Exception as e:
            logger.error("❌ Gemini generation failed: %s", e)
            return None

    async def _generate_openai(self, system_prompt: str, user_text: str,
                               history: List[Dict[str, str]], api_key: Optional[str] = None) -> Optional[str]:
        key = api_key or self.openai_api_key
        if not key:
            raise AIGenerationError("No OpenAI API key configured")
        client = AsyncOpenAI(api_key=key)
        messages = [{"role": "system", "content": system_prompt}]
        messages.extend({"role": turn["role"], "content": turn["content"]} for turn in history)
        messages.append({"role": "user", "content": user_text})
        response = await client.chat.completions.create(model=self.openai_model, messages=messages)
        text = (response.choices[0].message.content or "").strip()
        return text or None

    async def generate_reply(self, system_prompt: str, user_text: str,
                             history: Optional[List[Dict[str, str]]] = None,
                             api_key: Optional[str] = None) -> Optional[str]:
        """Persona reply with conversation context. Returns None when no provider answers."""
        history = history or []
        text = await self._generate_gemini(persona_prompt(system_prompt), user_text, history)
        if text:
            return text

        logger.info("🔍 Gemini returned nothing, falling back to OpenAI")
        try:
            return await self._generate_openai(
                f"{system_prompt}\n\n{FALLBACK_INSTRUCTION}", user_text, history, api_key=api_key
            )
        except Exception as e:
            logger.error("❌ OpenAI fallback failed: %s", e)
            return None

    async def complete_once(self, system_prompt: str, user_text: str, api_key: Optional[str] = None) -> str:
        """Single completion without history. Raises AIGenerationError on an empty answer."""
        text = await self._generate_openai(system_prompt, user_text, [], api_key=api_key)
        if not text:
            raise AIGenerationError("OpenAI returned an empty completion")
        return text
