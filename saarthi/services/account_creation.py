"""Account creation wizard.

Two paths:
- self: an elderly user signs up and names an emergency contact
- parent: a caregiver creates accounts for one or both parents, and is registered
  as a `child` user once the last parent is done
"""

import logging
import re

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from saarthi.models import UserType
from saarthi.services import user as user_service
from saarthi.services.sessions import AccountCreationSession, AccountType, SessionStore
from saarthi.services.tracing import traced
from saarthi.services.whatsapp import WhatsAppClient
from saarthi.utils.text import normalize_identity

logger = logging.getLogger(__name__)

PHONE_RE = re.compile(r"^\+\d{10,15}$")

ACCOUNT_TYPE_PROMPT = (
    "Welcome to Saarthi! Let's create your account. Are you creating an account for:\n\n"
    "1️⃣ Yourself (as an elderly user)\n"
    "2️⃣ For your parent\n\n"
    "Please reply with 1 or 2."
)
PARENT_COUNT_PROMPT = (
    "Are you creating an account for:\n\n"
    "1️⃣ One parent\n"
    "2️⃣ Both parents (separate accounts)\n\n"
    "Please reply with 1 or 2."
)
INVALID_PHONE = "Please enter a valid WhatsApp number with country code (e.g., +917XXXXXXXX):"
INVALID_AGE = "Please enter a valid age (a number between 1 and 120):"
SESSION_ERROR = "I'm sorry, something went wrong with your account creation. Let's start again."
PARENT_WELCOME = (
    "Hello {name}, welcome to Saarthi! 🌿\n\n"
    "Your account has been set up by {caregiver}. I'll help you manage your medications "
    "and health.\n\n"
    'Reply with "Hi" to get started.'
)


def parse_age(text: str) -> int | None:
    match = re.match(r"\s*(\d+)", text)
    if not match:
        return None
    age = int(match.group(1))
    return age if 1 <= age <= 120 else None


def is_valid_phone(text: str) -> bool:
    return bool(PHONE_RE.match(text.strip()))


class AccountCreationHandler:
    """Walks a new sender through sign-up, one question per message."""

    def __init__(self, db: AsyncSession, store: SessionStore, whatsapp_client: WhatsAppClient):
        self.db = db
        self.store = store
        self.whatsapp = whatsapp_client

    def start(self, identity: str) -> list[str]:
        self.store.account.set(identity, AccountCreationSession(stage="account_type"))
        logger.info(f"🆕 Account creation started for {identity}")
        return [ACCOUNT_TYPE_PROMPT]

    def _save(self, identity: str, session: AccountCreationSession, stage: str) -> None:
        session.stage = stage
        self.store.account.set(identity, session)

    @traced(capture_args=["identity", "text"])
    async def continue_creation(
        self, identity: str, text: str, profile_name: str | None = None
    ) -> list[str]:
        session = self.store.account.get(identity)
        if session is None:
            return [SESSION_ERROR, *self.start(identity)]

        reply = text.strip()
        choice = reply.lower()
        stage = session.stage

        if stage == "account_type":
            if choice in ("1", "myself", "self"):
                session.account_type = AccountType.SELF
                self._save(identity, session, "self_name")
                return ["Please enter your full name:"]
            if choice in ("2", "parent"):
                session.account_type = AccountType.PARENT
                session.parents = []
                self._save(identity, session, "parent_count")
                return [PARENT_COUNT_PROMPT]
            return [
                "I didn't understand your response. Please reply with:\n\n"
                "1️⃣ for yourself (as an elderly user)\n"
                "2️⃣ for your parent"
            ]

        if stage.startswith("self_"):
            return await self._continue_self(identity, session, reply)
        if stage.startswith("parent_"):
            return await self._continue_parent(identity, session, reply, profile_name)

        return [SESSION_ERROR, *self.start(identity)]

    # =========================================================================
    # Self sign-up
    # =========================================================================

    async def _continue_self(
        self, identity: str, session: AccountCreationSession, reply: str
    ) -> list[str]:
        data = session.data
        stage = session.stage

        if stage == "self_name":
            data["name"] = reply
            self._save(identity, session, "self_age")
            return ["Thank you! Please enter your age:"]

        if stage == "self_age":
            age = parse_age(reply)
            if age is None:
                return [INVALID_AGE]
            data["age"] = age
            self._save(identity, session, "self_location")
            return ["Please enter your city and state (e.g., Mumbai, Maharashtra):"]

        if stage == "self_location":
            data["location"] = reply
            self._save(identity, session, "self_emergency_contact")
            return [
                "Please provide an emergency contact's WhatsApp number "
                "(with country code, e.g., +917XXXXXXXX):"
            ]

        if stage == "self_emergency_contact":
            if not is_valid_phone(reply):
                return [INVALID_PHONE]
            data["emergency_contact"] = normalize_identity(reply)
            self._save(identity, session, "self_emergency_name")
            return ["What is the name of your emergency contact?"]

        if stage == "self_emergency_name":
            data["emergency_contact_name"] = reply
            self._save(identity, session, "self_emergency_relationship")
            return [
                "What is your relationship with the emergency contact?\n\n"
                "For example: son, daughter, spouse, sibling, friend, etc."
            ]

        if stage == "self_emergency_relationship":
            data["emergency_relationship"] = reply
            return await self._finish_self(identity, session)

        return [SESSION_ERROR, *self.start(identity)]

    async def _finish_self(self, identity: str, session: AccountCreationSession) -> list[str]:
        data = session.data
        self.store.account.delete(identity)
        try:
            await user_service.create_user(
                self.db,
                identity,
                UserType.ELDERLY,
                name=data["name"],
                age=data.get("age"),
                location=data.get("location"),
                emergency_contact=data["emergency_contact"],
                emergency_contact_name=data.get("emergency_contact_name"),
                emergency_relationship=data.get("emergency_relationship"),
            )
            await user_service.create_relationship(
                self.db,
                parent_phone=identity,
                child_phone=data["emergency_contact"],
                relationship_type=data.get("emergency_relationship"),
            )
        except (SQLAlchemyError, KeyError) as e:
            logger.error(f"❌ Account creation failed for {identity}: {e}", exc_info=True)
            await self.db.rollback()
            return [
                "There was an error creating your account. "
                "Please try again later or contact support."
            ]

        await self.whatsapp.send_text_message(
            data["emergency_contact"],
            f"Hello {data.get('emergency_contact_name')},\n\n"
            f"{data['name']} has added you as their emergency contact on Saarthi, "
            "a healthcare assistant app.\n\n"
            "You'll receive updates about their daily activities and medication adherence. "
            "If they need assistance, you'll be notified.\n\n"
            "No action is needed from you right now. This is just to let you know.",
        )
        logger.info(f"✅ Elderly account created for {identity}")
        return [
            f"✅ Thank you, {data['name']}! Your Saarthi account has been created "
            "successfully.\n\n"
            "I'll help you manage medications, track symptoms, and stay healthy.\n\n"
            'Type "Hi" anytime to see what I can do for you.'
        ]

    # =========================================================================
    # Parent sign-up
    # =========================================================================

    async def _continue_parent(
        self,
        identity: str,
        session: AccountCreationSession,
        reply: str,
        profile_name: str | None,
    ) -> list[str]:
        stage = session.stage

        if stage == "parent_count":
            choice = reply.lower()
            if choice in ("1", "one"):
                session.parent_count = 1
            elif choice in ("2", "two", "both"):
                session.parent_count = 2
            else:
                return [
                    "I didn't understand your response. Please reply with:\n\n"
                    "1️⃣ for one parent\n"
                    "2️⃣ for both parents"
                ]
            session.parent_index = 0
            self._save(identity, session, "parent_phone")
            which = "first " if session.parent_count == 2 else ""
            return [
                f"Please enter your {which}parent's WhatsApp number "
                "(with country code, e.g., +917XXXXXXXX):"
            ]

        if session.parent_count is None:
            return [SESSION_ERROR, *self.start(identity)]

        while len(session.parents) <= session.parent_index:
            session.parents.append({})
        parent = session.parents[session.parent_index]

        if stage == "parent_phone":
            if not is_valid_phone(reply):
                return [INVALID_PHONE]
            if await user_service.user_exists(self.db, reply):
                return [
                    "This phone number already has an account. Please provide a different "
                    "number or contact support if you believe this is an error."
                ]
            parent["phone"] = normalize_identity(reply)
            self._save(identity, session, "parent_name")
            position = ""
            if session.parent_count > 1:
                position = "first " if session.parent_index == 0 else "second "
            return [f"Please enter your {position}parent's full name:"]

        if stage == "parent_name":
            parent["name"] = reply
            self._save(identity, session, "parent_age")
            return ["Please enter your parent's age:"]

        if stage == "parent_age":
            age = parse_age(reply)
            if age is None:
                return [INVALID_AGE]
            parent["age"] = age
            self._save(identity, session, "parent_location")
            return ["Please enter your parent's city and state (e.g., Mumbai, Maharashtra):"]

        if stage == "parent_location":
            parent["location"] = reply
            self._save(identity, session, "parent_relationship")
            return [
                "What is your relationship with this parent?\n\n"
                "For example: son, daughter, etc."
            ]

        if stage == "parent_relationship":
            parent["relationship"] = reply
            return await self._finish_parent(identity, session, parent, profile_name)

        return [SESSION_ERROR, *self.start(identity)]

    async def _finish_parent(
        self,
        identity: str,
        session: AccountCreationSession,
        parent: dict,
        profile_name: str | None,
    ) -> list[str]:
        caregiver_name = profile_name or "Caregiver"
        try:
            await user_service.create_user(
                self.db,
                parent["phone"],
                UserType.ELDERLY,
                name=parent["name"],
                age=parent.get("age"),
                location=parent.get("location"),
                emergency_contact=identity,
                emergency_contact_name=caregiver_name,
                emergency_relationship=parent.get("relationship"),
                created_by=identity,
            )
            await user_service.create_relationship(
                self.db,
                parent_phone=parent["phone"],
                child_phone=identity,
                relationship_type=parent.get("relationship"),
            )
        except (SQLAlchemyError, KeyError) as e:
            logger.error(f"❌ Parent account creation failed for {identity}: {e}", exc_info=True)
            await self.db.rollback()
            self.store.account.delete(identity)
            return [
                "There was an error creating the account. "
                "Please try again later or contact support."
            ]

        await self.whatsapp.send_text_message(
            parent["phone"],
            PARENT_WELCOME.format(
                name=parent["name"], caregiver=profile_name or "your caregiver"
            ),
        )
        logger.info(f"✅ Parent account {parent['phone']} created by {identity}")

        if session.parent_count == 2 and session.parent_index == 0:
            session.parent_index = 1
            self._save(identity, session, "parent_phone")
            return [
                "✅ First parent's account created successfully!\n\n"
                "Now, please enter your second parent's WhatsApp number "
                "(with country code, e.g., +917XXXXXXXX):"
            ]

        if not await user_service.user_exists(self.db, identity):
            await user_service.create_user(self.db, identity, UserType.CHILD, name=caregiver_name)
        self.store.account.delete(identity)

        if session.parent_count == 1:
            headline = "✅ Your parent's account has been created successfully!"
        else:
            headline = "✅ Both parent accounts have been created successfully!"
        return [
            f"{headline}\n\n"
            "You can now manage their medications and monitor their health.\n\n"
            'To send commands on behalf of your parent, start your message with '
            '"for:(parent\'s number)" followed by your command.\n\n'
            'For example: "for:+917XXXXXXXX add medicine..."\n\n'
            "Your account is also registered, and you can use Saarthi for your own health "
            'needs. Type "Hi" to get started.'
        ]
