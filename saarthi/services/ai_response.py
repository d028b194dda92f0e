"""Open-domain replies for messages no dialog or command claimed."""

import logging

from openai import APIError

from saarthi.ai.client import OpenAIClient
from saarthi.ai.prompts import GENERAL_ASSISTANT_SYSTEM_PROMPT, HEALTH_DISCLAIMER, SYMPTOM_WORDS
from saarthi.services.tracing import traced

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "I'm sorry, I couldn't process your request at this time. Please try again later."


def needs_health_disclaimer(text: str) -> bool:
    lowered = text.lower()
    return any(word in lowered for word in SYMPTOM_WORDS)


@traced(capture_args=["user_input"])
async def get_ai_response(ai: OpenAIClient, user_input: str) -> str:
    try:
        reply = await ai.generate_text(
            GENERAL_ASSISTANT_SYSTEM_PROMPT, user_input, temperature=0.7, max_tokens=400
        )
    except (APIError, ValueError) as e:
        logger.error(f"❌ Error getting AI response: {e}")
        return FALLBACK_REPLY

    if needs_health_disclaimer(user_input):
        reply += HEALTH_DISCLAIMER
    return reply
