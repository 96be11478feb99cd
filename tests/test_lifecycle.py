"""Tests for status rules and country routing."""

import re

import pytest

from medbook.core.exceptions import UnsupportedCountry
from medbook.core.lifecycle import (
    can_transition,
    ensure_supported_country,
    generate_appointment_id,
    is_terminal,
)
from medbook.schemas.appointments import AppointmentStatus, CountryISO, normalize_status


def test_pending_moves_to_any_outcome():
    for target in (
        AppointmentStatus.PROCESSING,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.FAILED,
        AppointmentStatus.CANCELLED,
    ):
        assert can_transition(AppointmentStatus.PENDING, target)


def test_terminal_statuses_never_reopen():
    for terminal in (AppointmentStatus.COMPLETED, AppointmentStatus.FAILED):
        assert is_terminal(terminal)
        assert not can_transition(terminal, AppointmentStatus.PENDING)
        assert not can_transition(terminal, AppointmentStatus.PROCESSING)

    assert not can_transition(AppointmentStatus.COMPLETED, AppointmentStatus.FAILED)
    assert not can_transition(AppointmentStatus.FAILED, AppointmentStatus.COMPLETED)


def test_same_status_is_allowed_for_replays():
    for status in AppointmentStatus:
        assert can_transition(status, status)


def test_processing_cannot_go_back_to_pending():
    assert not can_transition(AppointmentStatus.PROCESSING, AppointmentStatus.PENDING)
    assert not is_terminal(AppointmentStatus.PROCESSING)


@pytest.mark.parametrize(
    "value,expected",
    [("PE", CountryISO.PE), (" cl", CountryISO.CL), ("pe", CountryISO.PE)],
)
def test_supported_countries(value, expected):
    assert ensure_supported_country(value) is expected


@pytest.mark.parametrize("value", ["AR", "", None, 42])
def test_unsupported_countries(value):
    with pytest.raises(UnsupportedCountry) as exc_info:
        ensure_supported_country(value)
    assert exc_info.value.status_code == 400


def test_appointment_id_format():
    appointment_id = generate_appointment_id()
    assert re.fullmatch(r"APT-\d{13}-[0-9a-f]{12}", appointment_id)


def test_appointment_ids_are_distinct():
    ids = {generate_appointment_id() for _ in range(1000)}
    assert len(ids) == 1000


def test_normalize_status_maps_legacy_value():
    assert normalize_status("confirmed") is AppointmentStatus.COMPLETED
    assert normalize_status("Completed") is AppointmentStatus.COMPLETED
    assert normalize_status(AppointmentStatus.FAILED) is AppointmentStatus.FAILED

    with pytest.raises(ValueError):
        normalize_status("scheduled")
