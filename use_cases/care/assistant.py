"""
Patient health assistant.

Answers a patient's message with their medications, conditions and recent
timeline entries folded into the system prompt.
"""

import asyncio
import logging

from core.domain import utc_now
from core.errors import ValidationError

from .ai_services import ClinicalTextService
from .models import PatientContext
from .prompts import assistant_system_prompt
from .repositories import PatientRecordRepository, TimelineRepository

logger = logging.getLogger(__name__)

RECENT_EVENT_LIMIT = 5


class HealthAssistant:
    def __init__(
        self,
        patient_records: PatientRecordRepository,
        timeline: TimelineRepository,
        text_service: ClinicalTextService,
    ):
        self._records = patient_records
        self._timeline = timeline
        self._text = text_service

    async def reply(self, user_id: str, message: str) -> str:
        """Return the assistant's answer to one message."""
        if not message or not message.strip():
            raise ValidationError("A message is required", field="message")

        if user_id:
            context = await asyncio.to_thread(self._records.get_context, user_id)
            events = await asyncio.to_thread(self._timeline.list_for_user, user_id)
        else:
            context = PatientContext()
            events = []

        system_prompt = assistant_system_prompt(
            utc_now().date(),
            context,
            events[:RECENT_EVENT_LIMIT],
        )
        logger.info(f"Assistant request from {user_id or 'anonymous'} ({len(message)} chars)")
        return await self._text.answer(system_prompt, message.strip())
