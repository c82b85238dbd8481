"""
Clinical Text Service.

The request/response contract for every natural-language step the care
service consumes (visit summarization, prescription drafting, specialty
classification, assistant answers) and its Azure OpenAI implementation.

Every call runs under core.resilience.call_with_retry: a per-attempt
timeout plus bounded exponential backoff on transient SDK errors. Any
failure reaches callers as ExternalServiceError.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Sequence

import openai
from openai import AsyncAzureOpenAI

from core.errors import ExternalServiceError
from core.resilience import RetryPolicy, call_with_retry

from . import prompts
from .models import Doctor, PatientContext

logger = logging.getLogger(__name__)

TRANSIENT_OPENAI_ERRORS = (
    openai.APITimeoutError,
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


@dataclass
class VisitSummaryRequest:
    """Inputs to the SOAP summarization step."""
    patient_name: str
    doctor: Doctor
    context: PatientContext
    notes: str
    transcription: str


class ClinicalTextService(ABC):
    """Natural-language generation consumed by the care service."""

    @abstractmethod
    async def summarize_visit(self, request: VisitSummaryRequest) -> str:
        """Return a SOAP-formatted visit summary."""
        pass

    @abstractmethod
    async def draft_prescription(self, patient_name: str, context: PatientContext, visit_summary: str) -> str:
        """Return advisory prescription suggestions that require doctor approval."""
        pass

    @abstractmethod
    async def classify_specialty(self, symptoms: str, specialties: Sequence[str]) -> str:
        """Return a single specialty label for a symptom description."""
        pass

    @abstractmethod
    async def answer(self, system_prompt: str, message: str) -> str:
        """Return the assistant's reply to a patient message."""
        pass


class AzureOpenAIClinicalTextService(ClinicalTextService):
    """ClinicalTextService backed by Azure OpenAI chat completions."""

    def __init__(self, client_provider: Callable[[], AsyncAzureOpenAI], deployment: str, policy: RetryPolicy):
        self._client_provider = client_provider
        self._deployment = deployment
        self._policy = policy

    async def _complete(
        self,
        name: str,
        messages: List[Dict[str, Any]],
        temperature: float,
        max_tokens: int,
    ) -> str:
        try:
            client = self._client_provider()
        except (openai.OpenAIError, ValueError) as e:
            logger.error(f"Azure OpenAI client could not be created: {e}", exc_info=True)
            raise ExternalServiceError("The AI service is not configured", {"operation": name}) from e

        async def attempt():
            return await client.chat.completions.create(
                model=self._deployment,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )

        try:
            response = await call_with_retry(
                attempt,
                name=name,
                policy=self._policy,
                retry_on=TRANSIENT_OPENAI_ERRORS,
            )
        except openai.APIError as e:
            logger.error(f"{name} rejected by Azure OpenAI: {e}", exc_info=True)
            raise ExternalServiceError(f"{name} was rejected by the AI service", {"operation": name}) from e

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            logger.error(f"{name} returned an empty response")
            raise ExternalServiceError(f"{name} returned an empty response", {"operation": name})
        return content.strip()

    async def summarize_visit(self, request: VisitSummaryRequest) -> str:
        return await self._complete(
            "visit_summary",
            [
                {"role": "system", "content": prompts.SOAP_SCRIBE_SYSTEM_PROMPT},
                {"role": "user", "content": prompts.visit_summary_prompt(
                    request.patient_name,
                    request.doctor,
                    request.context,
                    request.notes,
                    request.transcription,
                )},
            ],
            temperature=0.2,
            max_tokens=1000,
        )

    async def draft_prescription(self, patient_name: str, context: PatientContext, visit_summary: str) -> str:
        return await self._complete(
            "prescription_draft",
            [
                {"role": "system", "content": prompts.PRESCRIPTION_SYSTEM_PROMPT},
                {"role": "user", "content": prompts.prescription_prompt(patient_name, context, visit_summary)},
            ],
            temperature=0.2,
            max_tokens=500,
        )

    async def classify_specialty(self, symptoms: str, specialties: Sequence[str]) -> str:
        return await self._complete(
            "specialty_classification",
            [
                {"role": "system", "content": prompts.SPECIALTY_SYSTEM_PROMPT},
                {"role": "user", "content": prompts.specialty_prompt(symptoms, specialties)},
            ],
            temperature=0.0,
            max_tokens=20,
        )

    async def answer(self, system_prompt: str, message: str) -> str:
        return await self._complete(
            "assistant_chat",
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": message},
            ],
            temperature=0.3,
            max_tokens=1000,
        )
