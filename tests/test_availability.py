"""
Tests for doctor availability parsing and the availability store.
"""

from datetime import time

import pytest

from conftest import CARDIOLOGIST, DERMATOLOGIST, GENERALIST
from core.errors import AuthorizationError, NotFoundError, ParseError, ValidationError
from use_cases.care.domain.availability import Availability, TimeRange


class TestTimeRange:
    def test_parse_range(self):
        window = TimeRange.parse("09:00-12:30")

        assert window.start == time(9, 0)
        assert window.end == time(12, 30)
        assert str(window) == "09:00-12:30"

    def test_parse_tolerates_whitespace_and_single_digit_hours(self):
        assert TimeRange.parse(" 9:00 - 11:00 ") == TimeRange(time(9, 0), time(11, 0))

    @pytest.mark.parametrize("text", ["9-12", "09:00", "09:00-25:00", "09:60-10:00", "morning"])
    def test_malformed_range_is_rejected(self, text):
        with pytest.raises(ParseError):
            TimeRange.parse(text)

    def test_inverted_range_is_rejected(self):
        with pytest.raises(ParseError, match="start before it ends"):
            TimeRange.parse("17:00-09:00")

    def test_empty_range_is_rejected(self):
        with pytest.raises(ParseError):
            TimeRange.parse("10:00-10:00")

    def test_non_string_is_rejected(self):
        with pytest.raises(ParseError):
            TimeRange.parse(900)

    def test_adjacent_ranges_do_not_overlap(self):
        assert not TimeRange.parse("09:00-12:00").overlaps(TimeRange.parse("12:00-13:00"))
        assert TimeRange.parse("09:00-12:00").overlaps(TimeRange.parse("11:30-13:00"))


class TestAvailabilityParse:
    def test_parse_wrapped_document(self):
        availability = Availability.parse({"working_hours": {"monday": ["14:00-17:00", "09:00-12:00"]}})

        assert [str(r) for r in availability.ranges_for("monday")] == ["09:00-12:00", "14:00-17:00"]
        assert availability.ranges_for("tuesday") is None

    def test_parse_bare_mapping_with_mixed_case_days(self):
        availability = Availability.parse({"Monday": ["09:00-10:00"], "FRIDAY": []})

        assert availability.ranges_for("monday") == (TimeRange(time(9), time(10)),)
        assert availability.ranges_for("friday") == ()

    def test_null_day_means_closed(self):
        assert Availability.parse({"sunday": None}).ranges_for("sunday") == ()

    def test_unknown_day_is_rejected(self):
        with pytest.raises(ParseError, match="Unknown day"):
            Availability.parse({"funday": ["09:00-10:00"]})

    def test_duplicate_day_is_rejected(self):
        with pytest.raises(ParseError, match="more than once"):
            Availability.parse({"monday": ["09:00-10:00"], "Monday": ["11:00-12:00"]})

    def test_overlapping_ranges_are_rejected(self):
        with pytest.raises(ParseError, match="overlap"):
            Availability.parse({"monday": ["09:00-12:00", "11:00-13:00"]})

    def test_day_value_must_be_a_list(self):
        with pytest.raises(ParseError):
            Availability.parse({"monday": "09:00-12:00"})

    def test_document_must_be_an_object(self):
        with pytest.raises(ParseError):
            Availability.parse(["monday"])

    def test_to_dict_orders_days_by_week(self):
        availability = Availability.parse({"friday": ["10:00-11:00"], "monday": ["09:00-10:00"]})

        assert list(availability.to_dict()["working_hours"]) == ["monday", "friday"]
        assert Availability.parse(availability.to_dict()) == availability

    def test_parse_error_is_a_validation_error(self):
        with pytest.raises(ValidationError) as exc_info:
            Availability.parse({"monday": ["bad"]})
        assert exc_info.value.details["field"] == "availability"


class TestAvailabilityStore:
    def test_get_availability(self, services):
        availability = services.availability.get_availability(CARDIOLOGIST)

        assert [str(r) for r in availability.ranges_for("monday")] == ["09:00-12:00", "14:00-17:00"]

    def test_doctor_without_record_has_no_availability(self, services):
        assert services.availability.get_availability(GENERALIST) is None

    def test_unknown_doctor(self, services):
        with pytest.raises(NotFoundError):
            services.availability.get_availability("doc-unknown")

    def test_doctor_replaces_own_availability(self, services, store):
        services.availability.set_availability(
            DERMATOLOGIST, DERMATOLOGIST, {"working_hours": {"thursday": ["13:00-15:00"]}},
        )

        stored = store.doctors.get_by_id(DERMATOLOGIST).availability
        assert stored == {"working_hours": {"thursday": ["13:00-15:00"]}}

    def test_other_doctor_cannot_edit(self, services):
        with pytest.raises(AuthorizationError):
            services.availability.set_availability(
                DERMATOLOGIST, CARDIOLOGIST, {"working_hours": {"thursday": ["13:00-15:00"]}},
            )

    def test_anonymous_actor_cannot_edit(self, services):
        with pytest.raises(AuthorizationError):
            services.availability.set_availability(DERMATOLOGIST, None, {"working_hours": {}})

    def test_malformed_update_keeps_previous_schedule(self, services, store):
        with pytest.raises(ParseError):
            services.availability.set_availability(
                DERMATOLOGIST, DERMATOLOGIST, {"working_hours": {"tuesday": ["11:00-09:00"]}},
            )

        stored = store.doctors.get_by_id(DERMATOLOGIST).availability
        assert stored == {"working_hours": {"tuesday": ["09:00-11:00"]}}
