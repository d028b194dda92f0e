"""Medication information requests.

Free-text questions like "what is metformin" or "tell me about my medicine" are
matched with simple patterns; the answer itself comes from the AI client.
"""

import logging
import re

from openai import APIError

from saarthi.ai.client import OpenAIClient
from saarthi.ai.prompts import (
    MEDICATION_INFO_DISCLAIMER,
    PHARMACIST_SYSTEM_PROMPT,
    build_medication_info_prompt,
)
from saarthi.models import Medication

logger = logging.getLogger(__name__)

GENERIC_MEDICATION_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"my medicines?",
        r"my medications?",
        r"my drugs?",
        r"my prescriptions?",
        r"the medicines?",
    )
]

INFO_REQUEST_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"what is (.+)",
        r"tell me about (.+)",
        r"information (?:on|about) (.+)",
        r"info (?:on|about) (.+)",
        r"details (?:on|about) (.+)",
        r"about (.+)",
        r"info (.+)",
        r"medicine info (.+)",
        r"drug info (.+)",
    )
]

# Router keywords that send a message here before the AI fallback
INFO_TRIGGER_PHRASES = (
    "medicine info",
    "medication info",
    "drug info",
    "about my medicine",
    "tell me about",
)


def is_medication_info_request(text: str) -> bool:
    lowered = text.lower()
    return any(phrase in lowered for phrase in INFO_TRIGGER_PHRASES) or lowered.startswith(
        "what is"
    )


def extract_medication_name(text: str) -> str | None:
    for pattern in INFO_REQUEST_PATTERNS:
        match = pattern.search(text)
        if match:
            name = match.group(1).strip().rstrip("?.!").strip()
            if name:
                return name
    return None


def is_generic_reference(text: str) -> bool:
    return any(pattern.search(text) for pattern in GENERIC_MEDICATION_PATTERNS)


def match_user_medication(name: str, medications: list[Medication]) -> Medication | None:
    """A saved medication whose name equals or contains (or is contained in) name."""
    lowered = name.lower()
    for medication in medications:
        saved = medication.name.lower()
        if saved == lowered or saved in lowered or lowered in saved:
            return medication
    return None


async def get_medication_info(
    ai: OpenAIClient, medication_name: str, dosage: str | None = None
) -> str:
    """Patient-friendly information about one medication, with a disclaimer."""
    try:
        info = await ai.generate_text(
            PHARMACIST_SYSTEM_PROMPT,
            build_medication_info_prompt(medication_name, dosage),
            temperature=0.3,
            max_tokens=500,
        )
    except (APIError, ValueError) as e:
        logger.error(f"❌ Medication info failed for {medication_name}: {e}")
        return (
            f"Sorry, I couldn't retrieve information about {medication_name} at this time. "
            "Please try again later or consult your healthcare provider for information."
        )
    return f"*{medication_name}*\n\n{info}{MEDICATION_INFO_DISCLAIMER}"


async def process_medication_info_request(
    ai: OpenAIClient, text: str, medications: list[Medication]
) -> str | None:
    """Answer a free-text medication question, or None if it isn't one."""
    if is_generic_reference(text):
        if len(medications) == 1:
            medication = medications[0]
            return await get_medication_info(ai, medication.name, medication.dosage)
        if medications:
            names = ", ".join(m.name for m in medications)
            return (
                f"You're currently taking these medications: {names}. "
                "Which one would you like information about?"
            )
        return (
            "I don't have any medications saved for you. "
            "Please specify which medication you'd like information about."
        )

    name = extract_medication_name(text)
    if not name:
        return None

    saved = match_user_medication(name, medications)
    if saved is not None:
        return await get_medication_info(ai, saved.name, saved.dosage)
    return await get_medication_info(ai, name)
