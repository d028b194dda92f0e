"""Message Router - decides which conversation an inbound WhatsApp message belongs to.

Several dialogs can be waiting on the same person at once: a medication reminder,
a scheduled check-in, a symptom assessment, a menu, a wizard. Each message is
routed through a fixed sequence of stages and exactly one of them answers it:

| Stage | Check | Route |
|-------|-------|-------|
| 1 | Pending disambiguation | Replay the original text into the chosen dialog |
| 2 | Two or more live dialogs | Auto-attribute, or ask which one |
| 3 | yes/no/taken/missed + fresh reminder | Taken/missed (or ask reminder vs check-in) |
| 4 | Stored session | Continue that dialog |
| 5 | No session + active check-in | Check-in conversation |
| 6 | Bare 1-4 + active assessment | Symptom follow-up |
| 7 | Unknown sender | Account creation prompt |
| 8 | Known command | Command handler |
| 9 | Anything else | AI reply |

Sessions are written under the normalized identity. Reads in stages 1-3 also
accept the raw transport form; after stage 3 raw-keyed sessions are re-keyed so
the handlers only ever see the normalized identity.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from saarthi.ai.client import OpenAIClient, get_openai_client
from saarthi.models import ReminderStatus, User, UserType
from saarthi.schemas.conversation import (
    ActiveConversation,
    ConflictType,
    ConversationKind,
    DispatchResult,
)
from saarthi.services import medication as medication_service
from saarthi.services import user as user_service
from saarthi.services.account_creation import AccountCreationHandler
from saarthi.services.ai_response import get_ai_response
from saarthi.services.check_in import CheckInService
from saarthi.services.conversation_conflicts import (
    build_disambiguation_prompt,
    detect_conversation_conflicts,
    invalid_choice_message,
    parse_choice,
    reminder_vs_check_in_options,
    resolve_disambiguation,
)
from saarthi.services.lookups import ConversationLookups
from saarthi.services.medication_flows import UNKNOWN_REMINDER, MedicationHandler
from saarthi.services.medication_info import is_medication_info_request
from saarthi.services.menu import MenuHandler, main_menu
from saarthi.services.proxy import ProxyService
from saarthi.services.sessions import (
    DialogSession,
    DialogType,
    MedicationWizardSession,
    MenuStage,
    SessionStore,
    WizardFlow,
    get_session_store,
)
from saarthi.services.symptom_flows import FollowUpHandler, SymptomHandler
from saarthi.services.tracing import traced
from saarthi.services.whatsapp import WhatsAppClient
from saarthi.utils.text import (
    identity_keys,
    is_medication_response,
    parse_proxy_command,
)

logger = logging.getLogger(__name__)


GENERIC_ERROR = "I'm sorry, there was an error processing your request. Please try again later."
NO_ACCOUNT = (
    "Welcome to Saarthi! It seems you don't have an account yet.\n\n"
    'To create an account, please reply with "create account".'
)
REMINDER_VS_CHECK_IN_INVALID = (
    "Please reply with either 1 for medication reminder or 2 for check-in conversation."
)
DISAMBIGUATION_FALLBACK = "I'm not sure how to process your response. Let's start fresh."
DISAMBIGUATION_ERROR = "I'm sorry, I had trouble understanding your response. Let's start over."
DEFERRED_REMINDER = (
    "Don't forget to take your {medicine}! Please respond with \"Yes\" when you've taken it "
    'or "No" if you need a reminder later.'
)
MEDICATION_RESPONSE_ERROR = (
    "Sorry, there was an error processing your medication response. Please try again later."
)

GREETINGS = {"hi", "hello"}
MENU_COMMANDS = {"menu", "main menu", "back", "7"}
CREATE_ACCOUNT_COMMANDS = {"create account", "create an account"}
FOLLOW_UP_DIGITS = {"1", "2", "3", "4"}
REPORT_REQUEST_PHRASES = (
    "daily report",
    "check-in report",
    "activity report",
    "how is my parent",
    "how is my mom",
    "how is my dad",
)


class MessageRouter:
    """Routes inbound messages to exactly one dialog handler."""

    def __init__(
        self,
        db: AsyncSession,
        whatsapp_client: WhatsAppClient,
        store: SessionStore | None = None,
        ai: OpenAIClient | None = None,
        lookups: ConversationLookups | None = None,
    ):
        """Initialize message router.

        Args:
            db: Database session
            whatsapp_client: WhatsApp API client (can be in mock mode)
            store: Session store (defaults to the process-wide store)
            ai: OpenAI client (defaults to the shared client)
            lookups: Reminder / assessment / check-in lookups
        """
        self.db = db
        self.whatsapp = whatsapp_client
        self.store = store or get_session_store()
        self.ai = ai or get_openai_client()
        self.lookups = lookups or ConversationLookups(db)

        self.medication = MedicationHandler(
            db, self.store, whatsapp_client, self.ai, self.lookups
        )
        self.symptoms = SymptomHandler(db, self.store, self.ai)
        self.follow_ups = FollowUpHandler(db, self.store, self.ai, self.lookups)
        self.menu = MenuHandler(db, self.store, self.medication, self.symptoms)
        self.accounts = AccountCreationHandler(db, self.store, whatsapp_client)
        self.proxy = ProxyService(db, whatsapp_client, self.medication)
        self.check_ins = CheckInService(db, self.ai, self.lookups)

    @traced(capture_args=["sender", "body"])
    async def route_message(
        self, sender: str, body: str, profile_name: str | None = None
    ) -> dict[str, str | None]:
        """Route one inbound message and send the replies.

        Args:
            sender: Sender as received (with or without the whatsapp: prefix)
            body: Message text
            profile_name: Sender's WhatsApp profile name (optional)

        Returns:
            Dict with status ("processed" or "error"), route and response_text
        """
        text = (body or "").strip()
        keys = identity_keys(sender)
        identity = keys[0]

        logger.info(
            f"\n{'='*80}\n"
            f"📨 INCOMING MESSAGE\n"
            f"{'='*80}\n"
            f"  Sender: {sender} ({profile_name or 'Unknown'})\n"
            f"  Identity: {identity}\n"
            f"  Content: {text[:100]}{'...' if len(text) > 100 else ''}\n"
            f"{'='*80}"
        )

        try:
            await user_service.touch_last_interaction(self.db, identity)
            result = await self.dispatch(keys, text, profile_name)
            await self._send_replies(identity, result.replies)
        except Exception as e:
            logger.error(f"❌ Error routing message from {identity}: {e}", exc_info=True)
            await self.db.rollback()
            await self.whatsapp.send_text_message(identity, GENERIC_ERROR)
            result = DispatchResult(route="error", replies=[GENERIC_ERROR], status="error")

        logger.info(f"📤 {identity} routed to {result.route} ({len(result.replies)} replies)")
        return {
            "status": result.status,
            "route": result.route,
            "response_text": result.response_text,
        }

    async def _send_replies(self, identity: str, replies: list[str]) -> None:
        for reply in replies:
            if reply:
                await self.whatsapp.send_text_message(identity, reply)

    # ==========================================================================
    # Stage sequence
    # ==========================================================================

    async def dispatch(
        self, keys: list[str], text: str, profile_name: str | None = None
    ) -> DispatchResult:
        """Run the stage sequence for one message. Sends nothing itself."""
        identity = keys[0]

        # Stage 1: a question we asked is waiting for its answer
        pending = self.store.dialog.get(*keys)
        if pending is not None and pending.is_disambiguation:
            return await self._resolve_pending(keys, text, pending)

        # Stage 2: more than one live dialog
        conflict = await detect_conversation_conflicts(keys, self.store, self.lookups)
        if conflict.has_conflict:
            resolution = resolve_disambiguation(text, conflict)
            if resolution.needs_disambiguation:
                return self._ask(keys, text, resolution.conflict_type, resolution.options)
            target = resolution.target_conversation
            logger.info(f"🔄 Proceeding with {target.kind.value if target else 'no conversation'}")

        # Stage 3: reminder answers, rechecked directly
        if is_medication_response(text):
            result = await self._medication_response(keys, text)
            if result is not None:
                return result

        self.store.adopt(keys)

        # Stage 4: continue a stored dialog
        result = await self._continue_session(identity, text, profile_name)
        if result is not None:
            return result

        # Stage 5: reply to a check-in
        if not self.store.has_any(identity):
            result = await self._try_check_in_reply(identity, text)
            if result is not None:
                return result

        # Stage 6: bare 1-4 answers the newest symptom follow-up
        if text in FOLLOW_UP_DIGITS:
            session = self.store.dialog.get(identity)
            if session is None or not (session.stage and session.type):
                replies = await self.follow_ups.try_direct_follow_up(identity, text)
                if replies:
                    return DispatchResult(route="symptom_follow_up", replies=replies)

        # Stage 7: only registered users go further
        user = await user_service.get_user(self.db, identity)
        if user is None:
            if text.lower() in CREATE_ACCOUNT_COMMANDS:
                return DispatchResult(
                    route="account_creation", replies=self.accounts.start(identity)
                )
            return DispatchResult(route="account_prompt", replies=[NO_ACCOUNT])

        # Stage 8: commands
        result = await self._match_command(identity, text, profile_name or user.name, user)
        if result is not None:
            return result

        # Stage 9: open-domain reply
        logger.info("💬 No specific handler matched, sending AI response")
        return DispatchResult(route="ai_response", replies=[await get_ai_response(self.ai, text)])

    # ==========================================================================
    # Disambiguation
    # ==========================================================================

    def _ask(
        self,
        keys: list[str],
        text: str,
        conflict_type: ConflictType | None,
        options: list[ActiveConversation],
    ) -> DispatchResult:
        """Persist the pending question and return its prompt."""
        prompt = build_disambiguation_prompt(conflict_type, options)
        session = DialogSession(
            type=DialogType.DISAMBIGUATION,
            stage=conflict_type.value if conflict_type else None,
            options=options,
            original_text=text,
            conflict_type=conflict_type,
        )
        self.store.dialog.delete(*keys[1:])
        self.store.dialog.set(keys[0], session)
        logger.info(
            f"❓ Asking {keys[0]} to disambiguate "
            f"({conflict_type.value if conflict_type else 'general'}): "
            + ", ".join(o.kind.value for o in options)
        )
        return DispatchResult(route="disambiguation", replies=[prompt])

    async def _resolve_pending(
        self, keys: list[str], text: str, pending: DialogSession
    ) -> DispatchResult:
        identity = keys[0]
        choice = parse_choice(text, pending.options)
        if choice is None:
            if pending.conflict_type == ConflictType.REMINDER_VS_CHECKIN:
                message = REMINDER_VS_CHECK_IN_INVALID
            else:
                message = invalid_choice_message(pending)
            return DispatchResult(route="disambiguation", replies=[message])

        logger.info(f"👆 {identity} chose {choice.kind.value} ({choice.description})")
        self.store.dialog.delete(*keys)
        try:
            return await self.redispatch(
                identity,
                pending.original_text or "",
                choice.kind,
                option=choice,
                conflict_type=pending.conflict_type,
                options=pending.options,
            )
        except (SQLAlchemyError, ValueError) as e:
            logger.error(f"❌ Error replaying disambiguated message: {e}", exc_info=True)
            await self.db.rollback()
            self.store.dialog.delete(*keys)
            return DispatchResult(
                route="disambiguation_error",
                replies=[DISAMBIGUATION_ERROR, main_menu(self.store, identity)],
            )

    @traced(capture_args=["identity", "override_text", "target_kind"])
    async def redispatch(
        self,
        identity: str,
        override_text: str,
        target_kind: ConversationKind,
        option: ActiveConversation | None = None,
        conflict_type: ConflictType | None = None,
        options: list[ActiveConversation] | None = None,
    ) -> DispatchResult:
        """Replay a message into the dialog the user picked.

        Args:
            identity: Normalized sender
            override_text: The message that was held back while we asked
            target_kind: Kind of the chosen conversation
            option: The chosen option, carrying the dialog's saved state
            conflict_type: What kind of question was asked
            options: Every option offered, for the ones not chosen
        """
        payload = option.payload if option else {}
        options = options or []

        if target_kind == ConversationKind.MEDICATION_REMINDER:
            if conflict_type == ConflictType.REMINDER_VS_CHECKIN:
                await self.check_ins.clear_active_check_in(identity)
            reminder = await self.lookups.get_reminder(payload.get("id"))
            if reminder is not None and reminder.responded:
                logger.info(f"🔕 Reminder {reminder.id} was already answered, not replaying")
                return DispatchResult(route="medication_response", replies=[UNKNOWN_REMINDER])
            if not is_medication_response(override_text):
                medicine = payload.get("medicine", "your medicine")
                return DispatchResult(
                    route="medication_response",
                    replies=[DEFERRED_REMINDER.format(medicine=medicine)],
                )
            return DispatchResult(
                route="medication_response",
                replies=await self.medication.handle_medication_response(
                    identity, override_text, reminder
                ),
            )

        if target_kind == ConversationKind.CHECK_IN_RESPONSE:
            deferred = None
            if conflict_type == ConflictType.REMINDER_VS_CHECKIN:
                deferred = await self._skip_offered_reminder(options)
            result = await self._check_in_reply(identity, override_text, deferred)
            if result is not None:
                return result

        if target_kind in (
            ConversationKind.SYMPTOM_ASSESSMENT,
            ConversationKind.MENU_NAVIGATION,
        ):
            # The question replaced this dialog session; put it back first
            if payload and self.store.dialog.get(identity) is None:
                self.store.dialog.set(identity, DialogSession.model_validate(payload))
            result = await self._continue_dialog(identity, override_text)
            if result is not None:
                return result

        if target_kind == ConversationKind.MEDICATION_MANAGEMENT:
            if payload and self.store.medication.get(identity) is None:
                self.store.medication.set(
                    identity, MedicationWizardSession.model_validate(payload)
                )
            result = await self._continue_wizard(identity, override_text)
            if result is not None:
                return result

        if target_kind == ConversationKind.ACCOUNT_CREATION:
            result = await self._continue_account(identity, override_text, None)
            if result is not None:
                return result

        return DispatchResult(
            route="disambiguation_fallback",
            replies=[DISAMBIGUATION_FALLBACK, main_menu(self.store, identity)],
        )

    async def _skip_offered_reminder(self, options: list[ActiveConversation]) -> str | None:
        """Mark the reminder that lost to a check-in as skipped; returns its medicine."""
        for option in options:
            if option.kind != ConversationKind.MEDICATION_REMINDER:
                continue
            reminder = await self.lookups.get_reminder(option.payload.get("id"))
            if reminder is not None and reminder.responded:
                return None
            if reminder is not None:
                await medication_service.set_reminder_status(
                    self.db, reminder, ReminderStatus.SKIPPED, conflict_reason="conflict"
                )
            return option.payload.get("medicine")
        return None

    # ==========================================================================
    # Stage 3: medication reminder fast path
    # ==========================================================================

    async def _medication_response(self, keys: list[str], text: str) -> DispatchResult | None:
        identity = keys[0]
        reminder = await self.lookups.get_latest_unresponded_reminder(identity)
        if reminder is None:
            logger.info(f"No fresh reminder for {identity}, continuing with regular processing")
            return None

        check_in = await self.lookups.get_active_check_in(identity)
        if check_in is not None:
            return self._ask(
                keys,
                text,
                ConflictType.REMINDER_VS_CHECKIN,
                reminder_vs_check_in_options(reminder, check_in),
            )

        self.store.dialog.delete(*keys)
        try:
            replies = await self.medication.handle_medication_response(identity, text, reminder)
        except SQLAlchemyError as e:
            logger.error(f"❌ Error handling medication response: {e}", exc_info=True)
            await self.db.rollback()
            replies = [MEDICATION_RESPONSE_ERROR]
        return DispatchResult(route="medication_response", replies=replies)

    # ==========================================================================
    # Stage 4: session continuation
    # ==========================================================================

    async def _continue_session(
        self, identity: str, text: str, profile_name: str | None
    ) -> DispatchResult | None:
        """Account creation, then wizards, then symptom dialogs, then menus."""
        return (
            await self._continue_account(identity, text, profile_name)
            or await self._continue_wizard(identity, text)
            or await self._continue_dialog(identity, text)
        )

    async def _continue_account(
        self, identity: str, text: str, profile_name: str | None
    ) -> DispatchResult | None:
        if self.store.account.get(identity) is None:
            return None
        return DispatchResult(
            route="account_creation",
            replies=await self.accounts.continue_creation(identity, text, profile_name),
        )

    async def _continue_wizard(self, identity: str, text: str) -> DispatchResult | None:
        wizard = self.store.medication.get(identity)
        if wizard is None:
            return None

        flow = wizard.stage.flow
        if flow == WizardFlow.ADD:
            replies = await self.medication.continue_add(identity, text)
        elif flow == WizardFlow.UPDATE:
            replies = await self.medication.continue_update(identity, text)
        else:
            replies = await self.medication.continue_delete(identity, text)
        return DispatchResult(route=f"medication_{flow.value}", replies=replies)

    async def _continue_dialog(self, identity: str, text: str) -> DispatchResult | None:
        session = self.store.dialog.get(identity)
        if session is None:
            return None

        if session.type == DialogType.SYMPTOM:
            return DispatchResult(
                route="symptom_assessment",
                replies=await self.symptoms.continue_assessment(identity, text),
            )
        if session.type == DialogType.FOLLOW_UP:
            return DispatchResult(
                route="symptom_follow_up",
                replies=await self.follow_ups.handle_response(identity, text),
            )
        if session.stage == MenuStage.MAIN_MENU.value:
            return DispatchResult(
                route="main_menu",
                replies=await self.menu.handle_main_menu_selection(identity, text),
            )
        if session.stage == MenuStage.MEDICATION_MENU.value:
            return DispatchResult(
                route="medication_menu",
                replies=await self.menu.handle_medication_menu_selection(identity, text),
            )
        if session.stage == MenuStage.MEDICATION_INFO_SELECTION.value:
            return DispatchResult(
                route="medication_info",
                replies=await self.medication.handle_info_selection(identity, text),
            )
        return None

    # ==========================================================================
    # Stage 5: check-ins
    # ==========================================================================

    async def _try_check_in_reply(self, identity: str, text: str) -> DispatchResult | None:
        check_in = await self.lookups.get_active_check_in(identity)
        if check_in is None:
            return None
        try:
            return await self._check_in_reply(identity, text)
        except SQLAlchemyError as e:
            logger.warning(f"⚠️ Check-in processing failed for {identity}: {e}")
            await self.db.rollback()
            return None

    async def _check_in_reply(
        self, identity: str, text: str, deferred_medicine: str | None = None
    ) -> DispatchResult | None:
        result = await self.check_ins.process_check_in_response(identity, text)
        if not result.success:
            logger.info(f"Check-in did not accept reply from {identity}: {result.follow_up}")
            return None

        replies = [result.follow_up] if result.follow_up else []
        if result.conversation_complete:
            if deferred_medicine:
                replies.append(DEFERRED_REMINDER.format(medicine=deferred_medicine))
            replies.append(main_menu(self.store, identity))
        return DispatchResult(route="check_in_response", replies=replies)

    # ==========================================================================
    # Stage 8: commands
    # ==========================================================================

    async def _match_command(
        self, identity: str, text: str, display_name: str | None, user: User
    ) -> DispatchResult | None:
        lowered = text.lower()

        proxy = parse_proxy_command(text)
        if proxy is not None:
            return DispatchResult(
                route="proxy", replies=await self.proxy.process(identity, proxy)
            )

        if lowered in GREETINGS:
            return DispatchResult(
                route="welcome", replies=await self.menu.welcome(identity, display_name)
            )
        if lowered in MENU_COMMANDS:
            return DispatchResult(route="main_menu", replies=self.menu.show_main_menu(identity))

        if lowered == "symptom":
            return DispatchResult(
                route="symptom_assessment", replies=self.symptoms.start(identity)
            )
        if lowered in ("check symptom status", "symptom status"):
            return DispatchResult(
                route="symptom_follow_up", replies=await self.follow_ups.show_status(identity)
            )

        if lowered == "add medicine":
            return DispatchResult(
                route="medication_add", replies=self.medication.start_add(identity)
            )
        if lowered == "update medicine":
            return DispatchResult(
                route="medication_update", replies=await self.medication.start_update(identity)
            )
        if lowered in ("delete medicine", "remove medicine"):
            return DispatchResult(
                route="medication_delete", replies=await self.medication.start_delete(identity)
            )

        if lowered == "show medication history last week":
            return DispatchResult(
                route="medication_history",
                replies=await self.medication.show_history(identity, last_n_days=7),
            )
        if lowered == "show all medication history":
            return DispatchResult(
                route="medication_history",
                replies=await self.medication.show_history(identity, last_n_days=None),
            )

        if is_medication_info_request(text):
            replies = await self.medication.handle_info_request(identity, text)
            if replies:
                return DispatchResult(route="medication_info", replies=replies)

        if any(phrase in lowered for phrase in REPORT_REQUEST_PHRASES):
            return await self._report_request(identity, user)

        return None

    async def _report_request(self, identity: str, user: User) -> DispatchResult | None:
        """Caregivers get today's report for their first linked parent."""
        if user.user_type != UserType.CHILD.value:
            return None
        try:
            relationships = await user_service.get_child_relationships(self.db, identity)
            if not relationships:
                return None
            report = await self.check_ins.generate_daily_report(relationships[0].parent_phone)
        except SQLAlchemyError as e:
            logger.error(f"❌ Error handling report request from {identity}: {e}")
            await self.db.rollback()
            return None
        return DispatchResult(route="daily_report", replies=[report])
