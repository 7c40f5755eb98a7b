from datetime import date, timedelta
from decimal import Decimal

import pytest

from conftest import make_card, make_copy, make_user
from circulation.exceptions import PermissionDenied, StateConflict, ValidationFailed
from circulation.models import BorrowDetail, Fine
from circulation.services import borrowing, returns
from circulation.services.returns import ReturnSelection


def borrowed_request(db, reader, librarian, copy_ids, library_settings, today):
    request = borrowing.create_borrow_request(db, reader, copy_ids, library_settings=library_settings, today=today)
    borrowing.approve_borrow_request(db, request.borrow_request_id, librarian)
    return borrowing.issue_books(db, request.borrow_request_id, librarian, today=today)


@pytest.fixture
def loan(db, reader, librarian, card, copies, library_settings):
    # due 2024-01-10
    return borrowed_request(
        db, reader, librarian, [c.copy_id for c in copies], library_settings, today=date(2023, 12, 27)
    )


def test_on_time_full_return_closes_request(db, librarian, loan, copies, library_settings):
    selections = [ReturnSelection(c.copy_id) for c in copies]
    result = returns.process_return(
        db, loan.borrow_request_id, selections, librarian,
        library_settings=library_settings, returned_on=date(2024, 1, 10),
    )

    assert result.all_returned
    assert result.status == "returned"
    assert result.total_fine == 0
    assert result.fines == []
    assert all(item.success for item in result.items)
    db.refresh(loan)
    assert loan.status == "returned"
    for copy in copies:
        db.refresh(copy)
        assert copy.status == "available"
    assert all(d.actual_return_date == date(2024, 1, 10) for d in loan.details)


def test_partial_return_keeps_request_borrowed(db, librarian, loan, copies, library_settings):
    result = returns.process_return(
        db, loan.borrow_request_id, [ReturnSelection(copies[0].copy_id)], librarian,
        library_settings=library_settings, returned_on=date(2024, 1, 5),
    )

    assert not result.all_returned
    assert result.status == "borrowed"
    db.refresh(loan)
    assert loan.status == "borrowed"
    assert [d.book_copy_id for d in loan.outstanding_details()] == [copies[1].copy_id, copies[2].copy_id]


def test_partial_return_of_late_request_still_shows_overdue(db, librarian, loan, copies, library_settings):
    result = returns.process_return(
        db, loan.borrow_request_id, [ReturnSelection(copies[0].copy_id)], librarian,
        library_settings=library_settings, returned_on=date(2024, 1, 12),
    )
    assert result.status == "overdue"
    assert result.items[0].days_overdue == 2


def test_late_and_damaged_return(db, librarian, loan, copies, library_settings):
    result = returns.process_return(
        db, loan.borrow_request_id,
        [ReturnSelection(copies[0].copy_id, condition="damaged", notes="torn cover")],
        librarian, library_settings=library_settings, returned_on=date(2024, 1, 15),
    )

    assert result.total_fine == Decimal("75000")
    assert len(result.fines) == 1
    fine = result.fines[0]
    assert fine.amount == Decimal("75000")
    assert fine.status == "unpaid"
    assert fine.book_copy_id == copies[0].copy_id
    assert "5 day(s)" in fine.reason and "damaged" in fine.reason
    db.refresh(copies[0])
    assert copies[0].status == "damaged"
    detail = db.query(BorrowDetail).filter(BorrowDetail.book_copy_id == copies[0].copy_id).one()
    assert detail.return_condition == "damaged"
    assert detail.notes == "torn cover"


def test_lost_copy_is_disposed_and_charged_full_price(db, librarian, loan, copies, library_settings):
    result = returns.process_return(
        db, loan.borrow_request_id, [ReturnSelection(copies[1].copy_id, condition="lost")],
        librarian, library_settings=library_settings, returned_on=date(2024, 1, 8),
    )
    assert result.total_fine == Decimal("80000")
    db.refresh(copies[1])
    assert copies[1].status == "disposed"


def test_one_fine_per_copy(db, librarian, loan, copies, library_settings):
    result = returns.process_return(
        db, loan.borrow_request_id,
        [ReturnSelection(c.copy_id, condition="damaged") for c in copies],
        librarian, library_settings=library_settings, returned_on=date(2024, 1, 12),
    )
    # 2 days late at 5% plus half price
    assert [float(f.amount) for f in result.fines] == [60000.0, 48000.0, 30000.0]
    assert result.total_fine == Decimal("138000")


def test_returning_twice_does_not_duplicate_fine(db, librarian, loan, copies, library_settings):
    selection = [ReturnSelection(copies[0].copy_id)]
    first = returns.process_return(
        db, loan.borrow_request_id, selection, librarian,
        library_settings=library_settings, returned_on=date(2024, 1, 13),
    )
    assert first.items[0].success
    assert len(first.fines) == 1

    second = returns.process_return(
        db, loan.borrow_request_id, selection, librarian,
        library_settings=library_settings, returned_on=date(2024, 1, 14),
    )
    assert not second.items[0].success
    assert "already been returned" in second.items[0].error
    assert second.fines == []
    assert db.query(Fine).count() == 1


def test_returning_again_after_request_closed(db, librarian, loan, copies, library_settings):
    selections = [ReturnSelection(c.copy_id) for c in copies]
    returns.process_return(
        db, loan.borrow_request_id, selections, librarian,
        library_settings=library_settings, returned_on=date(2024, 1, 9),
    )
    again = returns.process_return(
        db, loan.borrow_request_id, selections[:1], librarian,
        library_settings=library_settings, returned_on=date(2024, 1, 9),
    )
    assert again.status == "returned"
    assert not again.items[0].success


def test_mixed_batch_reports_each_item(db, reader, librarian, loan, copies, library_settings):
    stranger = make_copy(db, "X001")
    result = returns.process_return(
        db, loan.borrow_request_id,
        [ReturnSelection(stranger.copy_id), ReturnSelection(copies[0].copy_id)],
        librarian, library_settings=library_settings, returned_on=date(2024, 1, 9),
    )

    assert [item.success for item in result.items] == [False, True]
    assert "does not belong" in result.items[0].error
    db.refresh(stranger)
    assert stranger.status == "available"


def test_same_copy_twice_in_one_batch(db, librarian, loan, copies, library_settings):
    result = returns.process_return(
        db, loan.borrow_request_id,
        [ReturnSelection(copies[0].copy_id, condition="lost"), ReturnSelection(copies[0].copy_id, condition="lost")],
        librarian, library_settings=library_settings, returned_on=date(2024, 1, 9),
    )
    assert [item.success for item in result.items] == [True, False]
    assert len(result.fines) == 1


def test_empty_selection_is_a_validation_error(db, librarian, loan, library_settings):
    with pytest.raises(ValidationFailed) as exc:
        returns.process_return(db, loan.borrow_request_id, [], librarian, library_settings=library_settings)
    assert exc.value.errors[0]["field"] == "returns"


def test_unknown_condition_is_a_validation_error(db, librarian, loan, copies, library_settings):
    with pytest.raises(ValidationFailed):
        returns.process_return(
            db, loan.borrow_request_id, [ReturnSelection(copies[0].copy_id, condition="wet")],
            librarian, library_settings=library_settings,
        )
    db.refresh(copies[0])
    assert copies[0].status == "borrowed"


def test_cannot_return_on_pending_request(db, reader, librarian, card, copies, library_settings):
    request = borrowing.create_borrow_request(
        db, reader, [copies[0].copy_id], library_settings=library_settings, today=date(2024, 1, 1)
    )
    with pytest.raises(StateConflict):
        returns.process_return(
            db, request.borrow_request_id, [ReturnSelection(copies[0].copy_id)],
            librarian, library_settings=library_settings,
        )


def test_readers_cannot_process_returns(db, reader, loan, copies, library_settings):
    with pytest.raises(PermissionDenied):
        returns.process_return(db, loan.borrow_request_id, [ReturnSelection(copies[0].copy_id)], reader)


def test_free_copy_damaged_creates_no_fine(db, librarian, card, reader, library_settings):
    gift = make_copy(db, "G001", price=0)
    request = borrowed_request(db, reader, librarian, [gift.copy_id], library_settings, today=date(2024, 1, 1))
    result = returns.process_return(
        db, request.borrow_request_id, [ReturnSelection(gift.copy_id, condition="damaged")],
        librarian, library_settings=library_settings, returned_on=date(2024, 1, 2),
    )
    assert result.items[0].success
    assert result.fines == []


def test_preview_does_not_write(db, librarian, loan, copies, library_settings):
    preview = returns.preview_return(
        db, loan.borrow_request_id, [ReturnSelection(copies[0].copy_id, condition="damaged")],
        library_settings=library_settings, on_date=date(2024, 1, 15),
    )
    assert preview[0]["amount"] == 75000.0
    assert preview[0]["daysOverdue"] == 5
    assert db.query(Fine).count() == 0
    db.refresh(loan)
    assert len(loan.outstanding_details()) == 3
