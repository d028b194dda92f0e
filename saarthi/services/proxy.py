"""Caregiver proxy commands - `for:<parent phone> <command>`."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from saarthi.models import CaregiverPermission
from saarthi.services import medication as medication_service
from saarthi.services import user as user_service
from saarthi.services.medication_flows import MedicationHandler
from saarthi.services.whatsapp import WhatsAppClient
from saarthi.utils.text import ProxyCommand, normalize_identity

logger = logging.getLogger(__name__)


class ProxyService:
    """Runs a caregiver's command against a parent's account, gated by permissions."""

    def __init__(
        self,
        db: AsyncSession,
        whatsapp_client: WhatsAppClient,
        medication: MedicationHandler,
    ):
        self.db = db
        self.whatsapp = whatsapp_client
        self.medication = medication

    async def process(self, caregiver_phone: str, proxy: ProxyCommand) -> list[str]:
        caregiver = normalize_identity(caregiver_phone)
        parent = normalize_identity(proxy.parent_phone)
        command = proxy.command.lower()

        relationship = await user_service.get_relationship(self.db, caregiver, parent)
        if relationship is None:
            logger.info(f"🚫 {caregiver} has no relationship with {parent}")
            return [f"You don't have permission to manage {proxy.parent_phone}."]

        permissions = relationship.permissions or []
        parent_user = await user_service.get_user(self.db, parent)
        parent_name = parent_user.name if parent_user else "your parent"
        logger.info(f"👪 Proxy command from {caregiver} for {parent}: {command}")

        if command.startswith("add medicine") or command.startswith("add medication"):
            if CaregiverPermission.MANAGE_MEDICATIONS.value not in permissions:
                return [f"You don't have permission to manage medications for {parent_name}."]
            replies = self.medication.start_add(caregiver, target_phone=parent, is_proxy=True)
            await self.notify_parent(
                parent, caregiver, "started adding a medication", "Medicine setup initiated"
            )
            return [f"I'll help you add medication for {parent_name}.", *replies]

        if "check medication" in command or "show medication" in command:
            if CaregiverPermission.VIEW_MEDICATIONS.value not in permissions:
                return [f"You don't have permission to view medications for {parent_name}."]
            return [await self._medication_list(parent, parent_name)]

        if "symptom" in command or "check health" in command:
            if CaregiverPermission.VIEW_SYMPTOMS.value not in permissions:
                return [f"You don't have permission to check symptoms for {parent_name}."]
            return [
                f"To assess {parent_name}'s symptoms, please type "
                f'"for:{proxy.parent_phone} symptom" followed by the specific symptom, '
                f'e.g., "for:{proxy.parent_phone} symptom headache"'
            ]

        return [
            'Command not recognized. You can use commands like "add medicine" or '
            f'"check medications" on behalf of {parent_name}.'
        ]

    async def _medication_list(self, parent_phone: str, parent_name: str) -> str:
        medications = await medication_service.get_user_medications(self.db, parent_phone)
        if not medications:
            return f"No medications found for {parent_name}."

        lines = [f"Medications for {parent_name}:\n"]
        for i, medication in enumerate(medications, start=1):
            dosage = f" ({medication.dosage})" if medication.dosage else ""
            lines.append(
                f"{i}. {medication.name}{dosage}\n"
                f"   Time: {medication.time}, Frequency: {medication.frequency or 'daily'}"
            )
        return "\n".join(lines)

    async def notify_parent(
        self, parent_phone: str, caregiver_phone: str, action: str, detail: str
    ) -> bool:
        caregiver = await user_service.get_user(self.db, caregiver_phone)
        caregiver_name = caregiver.name if caregiver else "Your caregiver"
        return await self.whatsapp.send_text_message(
            parent_phone, f"{caregiver_name} has {action} on your behalf: {detail}"
        )
