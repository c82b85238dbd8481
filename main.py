"""
FastAPI Application for the MediFlow care coordination service.

Exposes doctor availability, appointment booking and transitions, the
patient medical timeline, AI visit reports, specialty recommendation and
the patient health assistant.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from fastapi import FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings

from core.errors import CareError, PersistenceError

from use_cases.care import CareServices, create_services
from use_cases.care.schemas import (
    AppointmentChange,
    AppointmentRequest,
    AvailabilityRequest,
    ChatRequest,
    ReportRequest,
    SendReportRequest,
    SpecialtyRequest,
    TimelineEventRequest,
    appointment_to_response,
    doctor_to_response,
    report_to_response,
    slots_to_response,
    timeline_event_to_response,
)
from azure_client import client_manager

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Reduce Azure SDK logging verbosity
logging.getLogger("azure.cosmos").setLevel(logging.WARNING)
logging.getLogger("azure.core").setLevel(logging.WARNING)
logging.getLogger("azure.identity").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)

# Global instances
services: Optional[CareServices] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - handles startup and shutdown."""
    global services

    logger.info("Starting MediFlow care service...")
    services = create_services(settings)
    logger.info(f"Care services ready (storage={settings.storage_backend}, booking={settings.booking_policy})")

    # Re-deliver outbox events that were not projected at request time
    stop = asyncio.Event()
    relay_task = asyncio.create_task(
        services.relay.run(settings.outbox_poll_interval_seconds, stop)
    )

    yield

    # Cleanup
    logger.info("Shutting down...")
    stop.set()
    await relay_task
    await client_manager.close()


# Create FastAPI app
app = FastAPI(
    title="MediFlow Care",
    description="Appointment coordination, medical timeline and AI visit reports",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc"
)

# CORS middleware for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _services() -> CareServices:
    if services is None:
        raise PersistenceError("Care services are not initialized")
    return services


def _drain_outbox(care: CareServices) -> None:
    """Project confirmed appointments now; the background relay retries failures."""
    try:
        care.relay.drain()
    except CareError as e:
        logger.warning(f"Immediate outbox delivery failed, relay will retry: {e}", exc_info=True)


# =============================================================================
# ERROR HANDLING
# =============================================================================

@app.exception_handler(CareError)
async def care_error_handler(request: Request, exc: CareError):
    """Map the care error taxonomy onto HTTP responses."""
    if exc.user_safe:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")
    else:
        logger.error(
            f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message} {exc.details}",
            exc_info=exc,
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"error": True, "code": "internal_error", "message": "An unexpected error occurred"},
    )


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy" if services is not None else "starting",
        "version": "1.0.0",
        "use_case": "care_coordination",
        "storage_backend": settings.storage_backend,
        "booking_policy": settings.booking_policy,
        "azure_openai_configured": bool(settings.azure_openai_endpoint),
    }


# =============================================================================
# DOCTORS & AVAILABILITY
# =============================================================================

@app.get("/api/doctors")
def list_doctors(specialty: Optional[str] = Query(default=None)):
    """Doctor directory, optionally filtered by specialty."""
    care = _services()
    return {
        "doctors": [doctor_to_response(d) for d in care.directory.list_doctors(specialty)],
        "specialties": care.directory.specialties(),
    }


@app.get("/api/doctors/{doctor_id}/availability")
def get_availability(doctor_id: str):
    availability = _services().availability.get_availability(doctor_id)
    return {
        "doctor_id": doctor_id,
        "availability": availability.to_dict() if availability else None,
    }


@app.put("/api/doctors/{doctor_id}/availability")
def set_availability(
    doctor_id: str,
    request: AvailabilityRequest,
    x_actor_id: Optional[str] = Header(default=None),
):
    """Replace a doctor's weekly availability (doctor only)."""
    availability = _services().availability.set_availability(
        doctor_id, x_actor_id, {"working_hours": request.working_hours},
    )
    return {"doctor_id": doctor_id, "availability": availability.to_dict()}


@app.get("/api/doctors/{doctor_id}/slots")
def get_slots(doctor_id: str, date: str = Query(description="YYYY-MM-DD")):
    slots = _services().availability.slots_for(doctor_id, date)
    return slots_to_response(doctor_id, date, slots)


# =============================================================================
# APPOINTMENTS
# =============================================================================

@app.post("/api/appointments", status_code=201)
def request_appointment(request: AppointmentRequest):
    appointment = _services().registry.request_appointment(
        patient_id=request.patient_id,
        doctor_id=request.doctor_id,
        date=request.date,
        slot=request.slot,
        issue=request.issue,
        notes=request.notes,
    )
    return appointment_to_response(appointment)


@app.get("/api/appointments/{appointment_id}")
def get_appointment(appointment_id: str):
    return appointment_to_response(_services().registry.get(appointment_id))


@app.get("/api/patients/{patient_id}/appointments")
def list_patient_appointments(patient_id: str, status: Optional[str] = Query(default=None)):
    appointments = _services().registry.list_by_patient(patient_id, status)
    return {"appointments": [appointment_to_response(a) for a in appointments]}


@app.get("/api/doctors/{doctor_id}/appointments")
def list_doctor_appointments(doctor_id: str, status: Optional[str] = Query(default=None)):
    appointments = _services().registry.list_by_doctor(doctor_id, status)
    return {"appointments": [appointment_to_response(a) for a in appointments]}


@app.post("/api/appointments/{appointment_id}/confirm")
def confirm_appointment(appointment_id: str, x_actor_id: Optional[str] = Header(default=None)):
    care = _services()
    appointment = care.registry.confirm(appointment_id, x_actor_id)
    _drain_outbox(care)
    return appointment_to_response(appointment)


@app.post("/api/appointments/{appointment_id}/reject")
def reject_appointment(appointment_id: str, x_actor_id: Optional[str] = Header(default=None)):
    return appointment_to_response(_services().registry.reject(appointment_id, x_actor_id))


@app.post("/api/appointments/{appointment_id}/cancel")
def cancel_appointment(appointment_id: str, x_actor_id: Optional[str] = Header(default=None)):
    return appointment_to_response(_services().registry.cancel(appointment_id, x_actor_id))


@app.post("/api/appointments/{appointment_id}/complete")
def complete_appointment(appointment_id: str):
    return appointment_to_response(_services().registry.complete(appointment_id))


@app.post("/api/webhooks/appointments")
def appointment_changed(change: AppointmentChange):
    """State-change trigger: projects confirmed appointments into the timeline."""
    event = _services().projector.handle_appointment_change(change.model_dump())
    return {
        "processed": event is not None,
        "event": timeline_event_to_response(event) if event else None,
    }


# =============================================================================
# TIMELINE
# =============================================================================

@app.get("/api/patients/{patient_id}/timeline")
def get_timeline(patient_id: str):
    events = _services().projector.list(patient_id)
    return {"events": [timeline_event_to_response(e) for e in events]}


@app.post("/api/patients/{patient_id}/timeline", status_code=201)
def record_timeline_event(patient_id: str, request: TimelineEventRequest):
    event = _services().projector.record_event(patient_id, request.model_dump())
    return timeline_event_to_response(event)


# =============================================================================
# REPORTS
# =============================================================================

@app.post("/api/reports", status_code=201)
async def generate_report(request: ReportRequest):
    """Run the visit report pipeline (context, summary, prescription, persist)."""
    report = await _services().reports.generate(
        transcription=request.transcription,
        notes=request.notes,
        appointment_id=request.appointment_id,
        doctor_id=request.doctor_id,
        patient_id=request.patient_id,
    )
    return {"success": True, "report": report_to_response(report)}


@app.get("/api/reports/{report_id}")
def get_report(report_id: str):
    return report_to_response(_services().reports.get(report_id))


@app.post("/api/reports/{report_id}/send")
async def send_report(report_id: str, request: SendReportRequest):
    report = await _services().reports.send_report(report_id, request.channel, request.recipient_id)
    return {
        "success": True,
        "message": f"Report sent via {report.sent_via}",
        "report": report_to_response(report),
    }


# =============================================================================
# AI ASSISTANCE
# =============================================================================

@app.post("/api/specialty/recommend")
async def recommend_specialty(request: SpecialtyRequest):
    recommendation = await _services().recommender.recommend(request.symptoms)
    return {
        "specialty": recommendation.specialty,
        "label": recommendation.label,
        "doctors": [doctor_to_response(d) for d in recommendation.doctors],
    }


@app.post("/api/assistant/chat")
async def assistant_chat(request: ChatRequest, x_actor_id: Optional[str] = Header(default=None)):
    """Patient health assistant (answers with the patient's records as context)."""
    content = await _services().assistant.reply(request.user_id or x_actor_id, request.message)
    return {"content": content}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=False,
        log_level=settings.log_level.lower()
    )
