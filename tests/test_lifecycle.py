from datetime import date

import pytest

from circulation.exceptions import StateConflict, ValidationFailed
from circulation.services import lifecycle


def test_due_date_is_request_date_plus_borrow_days():
    assert lifecycle.due_date_for(date(2024, 1, 1), 14) == date(2024, 1, 15)


def test_overdue_is_derived_from_due_date():
    today = date(2024, 1, 11)
    assert lifecycle.display_status("borrowed", date(2024, 1, 10), today) == "overdue"
    assert lifecycle.display_status("borrowed", date(2024, 1, 11), today) == "borrowed"
    # only borrowed requests can be overdue
    assert lifecycle.display_status("approved", date(2024, 1, 1), today) == "approved"
    assert lifecycle.display_status("returned", date(2024, 1, 1), today) == "returned"


@pytest.mark.parametrize("current,target", [
    ("pending", "approved"),
    ("pending", "rejected"),
    ("pending", "cancelled"),
    ("approved", "borrowed"),
    ("borrowed", "returned"),
])
def test_allowed_transitions(current, target):
    lifecycle.check_transition(current, target)


@pytest.mark.parametrize("current,target", [
    ("approved", "rejected"),
    ("approved", "cancelled"),
    ("borrowed", "cancelled"),
    ("pending", "borrowed"),
    ("returned", "borrowed"),
    ("rejected", "approved"),
    ("cancelled", "pending"),
])
def test_illegal_transitions(current, target):
    with pytest.raises(StateConflict):
        lifecycle.check_transition(current, target)


def test_extension_must_be_after_current_due_date():
    today = date(2024, 1, 10)
    with pytest.raises(ValidationFailed) as exc:
        lifecycle.check_extension("borrowed", date(2024, 1, 20), date(2024, 1, 20), today)
    assert exc.value.errors[0]["field"] == "new_due_date"
    with pytest.raises(ValidationFailed):
        lifecycle.check_extension("borrowed", date(2024, 1, 20), date(2024, 1, 15), today)
    lifecycle.check_extension("borrowed", date(2024, 1, 20), date(2024, 1, 21), today)


def test_extension_of_overdue_request_must_be_after_tomorrow():
    today = date(2024, 1, 10)
    with pytest.raises(ValidationFailed):
        lifecycle.check_extension("borrowed", date(2024, 1, 5), date(2024, 1, 11), today)
    lifecycle.check_extension("borrowed", date(2024, 1, 5), date(2024, 1, 12), today)


@pytest.mark.parametrize("status", ["pending", "returned", "rejected", "cancelled"])
def test_extension_only_for_active_requests(status):
    with pytest.raises(StateConflict):
        lifecycle.check_extension(status, date(2024, 1, 20), date(2024, 2, 1), date(2024, 1, 10))
