"""
Prompt templates for the clinical text service.

Each builder returns plain strings; the service decides model parameters.
"""

from datetime import date
from typing import List, Sequence

from .domain.services import join_names
from .models import Doctor, PatientContext, TimelineEvent


SOAP_SCRIBE_SYSTEM_PROMPT = (
    "You are an AI medical scribe that creates concise visit summaries in SOAP format."
)

PRESCRIPTION_SYSTEM_PROMPT = (
    "You are an AI medical assistant helping to suggest possible prescription options. "
    "You always emphasize that the doctor must review and approve any medication suggestions."
)

SPECIALTY_SYSTEM_PROMPT = (
    "You route patients to the right kind of doctor. Reply with exactly one specialty "
    "name taken from the list you are given, and nothing else. If none fits, reply 'General'."
)


def _context_lines(patient_name: str, context: PatientContext) -> List[str]:
    return [
        "Patient Information:",
        f"- Name: {patient_name or 'Not provided'}",
        f"- Known Conditions: {join_names([c.name for c in context.conditions])}",
        f"- Current Medications: {join_names([m.describe() for m in context.medications])}",
        f"- Allergies: {join_names([a.describe() for a in context.allergies])}",
    ]


def visit_summary_prompt(
    patient_name: str,
    doctor: Doctor,
    context: PatientContext,
    notes: str,
    transcription: str,
) -> str:
    """User prompt for the SOAP visit summary."""
    lines = [
        "You are an AI medical scribe assisting a doctor. Based on the following consultation "
        "transcription and patient notes, create a concise, professional visit summary in the "
        "SOAP format (Subjective, Objective, Assessment, Plan). Include only medically relevant information.",
        "",
        *_context_lines(patient_name, context),
        "",
        f"Doctor: {doctor.display_name} ({doctor.specialty or 'General'})",
        "",
        f"Patient Notes: {notes or 'None'}",
        "",
        "Consultation Transcription:",
        transcription,
        "",
        "Format your response as a medical visit summary with the headings "
        "Subjective, Objective, Assessment and Plan.",
    ]
    return "\n".join(lines)


def prescription_prompt(patient_name: str, context: PatientContext, visit_summary: str) -> str:
    """User prompt for advisory prescription suggestions."""
    lines = [
        "Based on the visit summary and patient information below, suggest potential prescription "
        "options (if appropriate). If no medication is needed, clearly state that. Be specific about "
        "dosage, frequency, and duration when suggesting medications, and check against known allergies "
        "and current medications.",
        "",
        *_context_lines(patient_name, context),
        "",
        "Visit Summary:",
        visit_summary,
        "",
        "Provide prescription recommendations in a structured format.",
    ]
    return "\n".join(lines)


def specialty_prompt(symptoms: str, specialties: Sequence[str]) -> str:
    return (
        f"Available specialties: {', '.join(specialties) or 'General'}\n\n"
        f"Patient symptoms:\n{symptoms}\n\n"
        "Which specialty should the patient book?"
    )


def assistant_system_prompt(
    today: date,
    context: PatientContext,
    recent_events: Sequence[TimelineEvent],
) -> str:
    """System prompt for the patient-facing health assistant."""
    prompt = (
        "You are MediFlow, a medical AI assistant designed to help patients.\n"
        "Your role is to provide helpful medical information, symptom assessment, and general health guidance.\n"
        "Always clarify you're not a replacement for professional medical advice.\n"
        "\n"
        "When asked about symptoms:\n"
        "1. Ask clarifying questions about duration, severity, and context\n"
        "2. Provide reasoned suggestions about possible causes\n"
        "3. Recommend when to seek professional care\n"
        "4. Be empathetic and clear in your responses\n"
        "\n"
        f"Today's date is {today.isoformat()}."
    )

    context_lines: List[str] = []
    if context.medications:
        context_lines.append("Medications: " + ", ".join(m.describe() for m in context.medications))
    if context.conditions:
        context_lines.append("Medical conditions: " + ", ".join(c.name for c in context.conditions))
    if context.allergies:
        context_lines.append("Allergies: " + ", ".join(a.describe() for a in context.allergies))
    if recent_events:
        context_lines.append("Recent medical events: " + "; ".join(
            f"{e.title} ({e.kind.value}, {e.date.date().isoformat()})" for e in recent_events
        ))

    if context_lines:
        prompt += "\n\nUser context:\n" + "\n".join(context_lines)
    return prompt
