"""Identity and message text utilities."""

import re

from pydantic import BaseModel

WHATSAPP_PREFIX = "whatsapp:"

MEDICATION_RESPONSE_WORDS = {"yes", "no", "taken", "missed"}
AFFIRMATIVE_MEDICATION_WORDS = {"yes", "taken"}


class ProxyCommand(BaseModel):
    """A caregiver command of the form `for:<parent phone> <command>`."""

    parent_phone: str
    command: str


def normalize_identity(raw: str) -> str:
    """Canonical session/lookup key for a sender.

    Strips the `whatsapp:` transport prefix and surrounding whitespace. Idempotent.
    """
    value = (raw or "").strip()
    while value.lower().startswith(WHATSAPP_PREFIX):
        value = value[len(WHATSAPP_PREFIX):].strip()
    return value


def identity_keys(raw: str) -> list[str]:
    """Keys to read for a sender, normalized first then the raw form if different."""
    normalized = normalize_identity(raw)
    keys = [normalized]
    if raw and raw != normalized:
        keys.append(raw)
    return keys


def is_medication_response(text: str) -> bool:
    return text.strip().lower() in MEDICATION_RESPONSE_WORDS


def is_affirmative_medication_response(text: str) -> bool:
    return text.strip().lower() in AFFIRMATIVE_MEDICATION_WORDS


def split_message_into_chunks(message: str, max_length: int = 1400) -> list[str]:
    """Split a long message at the most natural boundary that fits.

    Preference: paragraph break, line break, sentence end, space. A boundary only
    counts if it falls past half of max_length; otherwise the text is hard cut.
    """
    if len(message) <= max_length:
        return [message]

    chunks: list[str] = []
    remaining = message
    half = max_length / 2

    while remaining:
        split_at = max_length
        if len(remaining) > max_length:
            window = remaining[: max_length + 1]
            paragraph = window.rfind("\n\n")
            line = window.rfind("\n")
            sentence = max(window.rfind(". "), window.rfind("! "), window.rfind("? "))
            space = window.rfind(" ")

            if paragraph > half:
                split_at = paragraph + 2
            elif line > half:
                split_at = line + 1
            elif sentence > half:
                split_at = sentence + 2
            elif space > half:
                split_at = space + 1

        chunk = remaining[:split_at].strip()
        if chunk:
            chunks.append(chunk)
        remaining = remaining[split_at:].strip()

    return chunks


def parse_proxy_command(message: str) -> ProxyCommand | None:
    """Parse `for:+9198... add medicine` into its parent phone and command."""
    if not message.lower().startswith("for:"):
        return None

    first_space = message.find(" ")
    if first_space == -1:
        return None

    parent_phone = message[4:first_space].strip()
    command = message[first_space + 1:].strip()
    if not parent_phone or not command:
        return None
    return ProxyCommand(parent_phone=parent_phone, command=command)


def format_reminder_message(medicine: str) -> str:
    return (
        f"🔔 Reminder: It's time to take your medicine - *{medicine}*. "
        "\n\nHave you taken it? ✅ Yes / ❌ No"
    )


def parse_number_choice(text: str) -> int | None:
    """Return the integer value of a bare numeric reply, else None."""
    stripped = text.strip()
    if re.fullmatch(r"\d+", stripped):
        return int(stripped)
    return None
