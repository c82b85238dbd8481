"""
Tests for the doctor directory, specialty recommendation and the health assistant.
"""

import pytest

from conftest import CARDIOLOGIST, DERMATOLOGIST, GENERALIST, PATIENT
from core.errors import ExternalServiceError, ValidationError


class TestDoctorDirectory:
    def test_list_all_doctors(self, services):
        assert {d.id for d in services.directory.list_doctors()} == {CARDIOLOGIST, DERMATOLOGIST, GENERALIST}

    def test_filter_is_case_insensitive(self, services):
        assert [d.id for d in services.directory.list_doctors("dermatology")] == [DERMATOLOGIST]

    def test_all_means_no_filter(self, services):
        assert len(services.directory.list_doctors("All")) == 3

    def test_specialties(self, services):
        assert services.directory.specialties() == ["Cardiology", "Dermatology", "General Practice"]

    def test_full_name(self, services):
        assert services.directory.get(CARDIOLOGIST).full_name == "Dr. Ana Reyes (Cardiology)"


class TestSpecialtyRecommender:
    @pytest.mark.asyncio
    async def test_recommends_matching_doctors(self, services, text_service):
        recommendation = await services.recommender.recommend("Chest pain when walking uphill")

        assert recommendation.specialty == "Cardiology"
        assert [d.id for d in recommendation.doctors] == [CARDIOLOGIST]
        _, symptoms, specialties = text_service.calls[0]
        assert symptoms == "Chest pain when walking uphill"
        assert specialties == ["Cardiology", "Dermatology", "General Practice"]

    @pytest.mark.asyncio
    async def test_label_is_normalized(self, services, text_service):
        text_service.specialty = " dermatology."

        recommendation = await services.recommender.recommend("Itchy rash on both arms")

        assert recommendation.specialty == "Dermatology"

    @pytest.mark.asyncio
    async def test_unmatched_label_falls_back_to_all_doctors(self, services, text_service):
        text_service.specialty = "Neurology"

        recommendation = await services.recommender.recommend("Frequent headaches")

        assert recommendation.specialty is None
        assert recommendation.label == "Neurology"
        assert len(recommendation.doctors) == 3

    @pytest.mark.asyncio
    async def test_empty_symptoms(self, services, text_service):
        with pytest.raises(ValidationError):
            await services.recommender.recommend("  ")
        assert text_service.calls == []

    @pytest.mark.asyncio
    async def test_classifier_failure(self, services, text_service):
        text_service.fail_on = {"classify_specialty"}

        with pytest.raises(ExternalServiceError):
            await services.recommender.recommend("Chest pain")


class TestHealthAssistant:
    @pytest.mark.asyncio
    async def test_reply_includes_patient_context(self, services, text_service):
        services.projector.record_event(PATIENT, {"title": "Lipid panel", "kind": "lab", "date": "2030-01-10"})

        reply = await services.assistant.reply(PATIENT, "Can I take ibuprofen?")

        assert reply == text_service.reply
        _, system_prompt, message = text_service.calls[0]
        assert message == "Can I take ibuprofen?"
        assert "Lisinopril (10 mg, daily)" in system_prompt
        assert "Penicillin (rash, moderate)" in system_prompt
        assert "Lipid panel (lab, 2030-01-10)" in system_prompt
        assert "Ibuprofen" not in system_prompt

    @pytest.mark.asyncio
    async def test_anonymous_reply_has_no_user_context(self, services, text_service):
        await services.assistant.reply(None, "What is a normal resting heart rate?")

        assert "User context" not in text_service.calls[0][1]

    @pytest.mark.asyncio
    async def test_empty_message(self, services):
        with pytest.raises(ValidationError):
            await services.assistant.reply(PATIENT, "")
