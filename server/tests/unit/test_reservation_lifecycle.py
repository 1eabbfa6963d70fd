"""Unit tests for the reservation lifecycle."""

from datetime import date, datetime, time

import pytest
from conftest import hospital_request, hotel_request

from petcare.core.clock import fixed_clock
from petcare.core.exceptions import (
    CapacityExceededError,
    InvalidTransitionError,
    NotFoundError,
    NotFoundOrNotOwnerError,
    SlotClosedError,
    SlotConflictError,
    ValidationError,
)
from petcare.models import NotificationType, ReminderKind, ReminderStatus, ReservationKind, ReservationStatus
from petcare.schemas.venue import AddDoctorRequest, CreateVenueRequest, SetClosedTimesRequest
from petcare.services.notification_service import NotificationHub
from petcare.services.reminder_service import ReminderScheduler
from petcare.services.reservation_service import ReservationService
from petcare.services.venue_service import VenueService

VISIT = datetime(2024, 5, 3, 10, 0)


async def _types_for(session, member_id):
    items, _ = await NotificationHub(session).list_for(member_id, size=100)
    return [n.type for n in items]


@pytest.mark.asyncio
async def test_reserve_hospital_is_pending_with_reminders_and_notice(test_session, venue, doctor, clock):
    service = ReservationService(test_session, clock=clock)

    reservation = await service.reserve_hospital("member-1", hospital_request(venue, doctor, VISIT))

    assert reservation.status == ReservationStatus.PENDING.value
    assert reservation.appointment_at == VISIT
    assert reservation.member_id == "member-1"

    reminders = await ReminderScheduler(test_session, clock=clock).list_for_reservation(str(reservation.id))
    assert [(r.kind, r.fire_at) for r in reminders] == [
        (ReminderKind.REMIND_24H.value, datetime(2024, 5, 2, 10, 0)),
        (ReminderKind.REMIND_3H.value, datetime(2024, 5, 3, 7, 0)),
    ]
    assert all(r.status == ReminderStatus.PENDING.value for r in reminders)

    assert await _types_for(test_session, "member-1") == [NotificationType.RESERVATION_HOSPITAL.value]


@pytest.mark.asyncio
async def test_same_slot_conflicts_for_second_member(test_session, venue, doctor, clock):
    service = ReservationService(test_session, clock=clock)
    await service.reserve_hospital("member-1", hospital_request(venue, doctor, VISIT))

    with pytest.raises(SlotConflictError):
        await service.reserve_hospital("member-2", hospital_request(venue, doctor, VISIT))

    assert await _types_for(test_session, "member-2") == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "appointment_at",
    [
        datetime(2024, 4, 30, 10, 0),   # past
        datetime(2024, 5, 3, 10, 15),   # off the slot grid
        datetime(2024, 5, 3, 13, 0),    # lunch break
        datetime(2024, 5, 3, 9, 30),    # before opening
        datetime(2024, 5, 3, 18, 0),    # after closing
    ],
)
async def test_reserve_hospital_rejects_unbookable_times(test_session, venue, doctor, clock, appointment_at):
    service = ReservationService(test_session, clock=clock)

    with pytest.raises(ValidationError):
        await service.reserve_hospital("member-1", hospital_request(venue, doctor, appointment_at))


@pytest.mark.asyncio
async def test_reserve_requires_known_member_and_matching_doctor(test_session, venue, doctor, clock):
    service = ReservationService(test_session, clock=clock)

    with pytest.raises(NotFoundError):
        await service.reserve_hospital("stranger", hospital_request(venue, doctor, VISIT))

    other_venue = await service.venues.create_venue(CreateVenueRequest(name="Elsewhere"))
    with pytest.raises(NotFoundError):
        await service.reserve_hospital("member-1", hospital_request(other_venue, doctor, VISIT))


@pytest.mark.asyncio
async def test_confirm_then_confirm_again_is_invalid(test_session, venue, doctor, clock):
    service = ReservationService(test_session, clock=clock)
    reservation = await service.reserve_hospital("member-1", hospital_request(venue, doctor, VISIT))

    confirmed = await service.confirm("HOSPITAL", reservation.id)
    assert confirmed.status == ReservationStatus.CONFIRMED.value

    with pytest.raises(InvalidTransitionError) as exc_info:
        await service.confirm("HOSPITAL", reservation.id)
    assert exc_info.value.code == "INVALID_TRANSITION"
    assert exc_info.value.problem_details["current_status"] == "CONFIRMED"

    # Confirming does not duplicate reminders scheduled at reservation time
    reminders = await service.reminders.list_for_reservation(str(reservation.id))
    assert len(reminders) == 2

    assert NotificationType.RESERVATION_HOSPITAL_CONFIRM.value in await _types_for(test_session, "member-1")


@pytest.mark.asyncio
async def test_reject_cancels_pending_reminders(test_session, venue, doctor, clock):
    service = ReservationService(test_session, clock=clock)
    reservation = await service.reserve_hospital("member-1", hospital_request(venue, doctor, VISIT))

    rejected = await service.reject("HOSPITAL", reservation.id)

    assert rejected.status == ReservationStatus.REJECTED.value
    reminders = await service.reminders.list_for_reservation(str(reservation.id))
    assert {r.status for r in reminders} == {ReminderStatus.CANCELLED.value}

    with pytest.raises(InvalidTransitionError):
        await service.cancel("HOSPITAL", reservation.id, "member-1")


@pytest.mark.asyncio
async def test_cancel_requires_owner_or_admin(test_session, venue, doctor, clock):
    service = ReservationService(test_session, clock=clock)
    reservation = await service.reserve_hospital("member-1", hospital_request(venue, doctor, VISIT))

    with pytest.raises(NotFoundOrNotOwnerError) as exc_info:
        await service.cancel("HOSPITAL", reservation.id, "member-2")
    assert exc_info.value.status_code == 404

    canceled = await service.cancel("HOSPITAL", reservation.id, "admin", is_admin=True)
    assert canceled.status == ReservationStatus.CANCELED.value


@pytest.mark.asyncio
async def test_cancel_keeps_sent_reminder_and_cancels_the_rest(test_session, venue, doctor, clock):
    service = ReservationService(test_session, clock=clock)
    reservation = await service.reserve_hospital("member-1", hospital_request(venue, doctor, VISIT))
    await service.confirm("HOSPITAL", reservation.id)

    # The 24h reminder goes out the day before
    day_before = datetime(2024, 5, 2, 10, 30)
    sweep = await ReminderScheduler(test_session, clock=fixed_clock(day_before), worker_id="w1").sweep()
    assert sweep.sent == 1

    await service.cancel("HOSPITAL", reservation.id, "member-1")

    reminders = await service.reminders.list_for_reservation(str(reservation.id))
    statuses = {r.kind: r.status for r in reminders}
    assert statuses == {
        ReminderKind.REMIND_24H.value: ReminderStatus.SENT.value,
        ReminderKind.REMIND_3H.value: ReminderStatus.CANCELLED.value,
    }


@pytest.mark.asyncio
async def test_no_show_only_after_visit(test_session, venue, doctor, clock):
    service = ReservationService(test_session, clock=clock)
    reservation = await service.reserve_hospital("member-1", hospital_request(venue, doctor, VISIT))

    with pytest.raises(InvalidTransitionError):
        await service.mark_no_show("HOSPITAL", reservation.id)

    await service.confirm("HOSPITAL", reservation.id)
    with pytest.raises(ValidationError):
        await service.mark_no_show("HOSPITAL", reservation.id)

    later = ReservationService(test_session, clock=fixed_clock(datetime(2024, 5, 3, 11, 0)))
    marked = await later.mark_no_show("HOSPITAL", reservation.id)

    assert marked.status == ReservationStatus.NOSHOW.value
    assert await later.count_no_shows("member-1") == 1
    assert await later.count_no_shows("member-2") == 0
    assert NotificationType.RESERVATION_HOSPITAL_NOSHOW.value in await _types_for(test_session, "member-1")


@pytest.mark.asyncio
async def test_get_visible_hides_foreign_reservations(test_session, venue, doctor, clock):
    service = ReservationService(test_session, clock=clock)
    reservation = await service.reserve_hospital("member-1", hospital_request(venue, doctor, VISIT))

    assert (await service.get_visible("HOSPITAL", reservation.id, "member-1")).id == reservation.id
    assert (await service.get_visible("HOSPITAL", reservation.id, "admin", is_admin=True)).id == reservation.id

    with pytest.raises(NotFoundOrNotOwnerError):
        await service.get_visible("HOSPITAL", reservation.id, "member-2")
    with pytest.raises(NotFoundOrNotOwnerError):
        await service.get_visible("HOTEL", reservation.id, "member-1")


@pytest.mark.asyncio
async def test_hotel_confirm_schedules_check_in_reminders(test_session, venue, clock):
    service = ReservationService(test_session, clock=clock)
    stay = await service.reserve_hotel("member-1", hotel_request(venue, date(2024, 5, 10), date(2024, 5, 12)))

    assert stay.status == ReservationStatus.PENDING.value
    assert await service.reminders.list_for_reservation(str(stay.id)) == []

    await service.confirm("HOTEL", stay.id)

    reminders = await service.reminders.list_for_reservation(str(stay.id))
    assert [r.fire_at for r in reminders] == [datetime(2024, 5, 9, 14, 0), datetime(2024, 5, 10, 11, 0)]
    assert {r.service_kind for r in reminders} == {"HOTEL"}

    types = await _types_for(test_session, "member-1")
    assert NotificationType.RESERVATION_HOTEL.value in types
    assert NotificationType.RESERVATION_HOTEL_CONFIRM.value in types


@pytest.mark.asyncio
async def test_hotel_rejects_past_check_in(test_session, venue, clock):
    service = ReservationService(test_session, clock=clock)

    with pytest.raises(ValidationError):
        await service.reserve_hotel("member-1", hotel_request(venue, date(2024, 4, 29), date(2024, 5, 2)))


@pytest.mark.asyncio
async def test_hotel_fifteen_confirmed_stays_fill_the_venue(test_session, venue, clock):
    service = ReservationService(test_session, clock=clock)
    for i in range(15):
        stay = await service.reserve_hotel(
            "member-1", hotel_request(venue, date(2024, 5, 10), date(2024, 5, 12), pet_name=f"Pet {i}")
        )
        await service.confirm("HOTEL", stay.id)

    with pytest.raises(CapacityExceededError):
        await service.reserve_hotel("member-2", hotel_request(venue, date(2024, 5, 11), date(2024, 5, 13)))
    await test_session.refresh(venue)

    disjoint = await service.reserve_hotel(
        "member-2", hotel_request(venue, date(2024, 5, 20), date(2024, 5, 22))
    )
    assert disjoint.status == ReservationStatus.PENDING.value


@pytest.mark.asyncio
async def test_no_show_count_spans_both_kinds(test_session, venue, doctor, clock):
    service = ReservationService(test_session, clock=clock)
    visit = await service.reserve_hospital("member-1", hospital_request(venue, doctor, VISIT))
    stay = await service.reserve_hotel("member-1", hotel_request(venue, date(2024, 5, 10), date(2024, 5, 12)))
    await service.confirm("HOSPITAL", visit.id)
    await service.confirm("HOTEL", stay.id)

    later = ReservationService(test_session, clock=fixed_clock(datetime(2024, 5, 11, 9, 0)))
    await later.mark_no_show("HOSPITAL", visit.id)
    await later.mark_no_show("HOTEL", stay.id)

    assert await later.count_no_shows("member-1") == 2


async def _close(session, venue, times, doctor=None, day=VISIT.date()):
    return await VenueService(session).set_closed_times(
        SetClosedTimesRequest(
            venue_id=str(venue.id),
            doctor_id=str(doctor.id) if doctor else None,
            day=day,
            times=times,
            reason="Staff training",
        )
    )


@pytest.mark.asyncio
async def test_closed_slot_cannot_be_reserved(test_session, venue, doctor, clock):
    await _close(test_session, venue, [time(10, 0)], doctor=doctor)
    service = ReservationService(test_session, clock=clock)

    with pytest.raises(SlotClosedError) as exc_info:
        await service.reserve_hospital("member-1", hospital_request(venue, doctor, VISIT))
    assert exc_info.value.code == "SLOT_CLOSED"
    assert exc_info.value.problem_details["retryable"] is False

    # The neighbouring slot is still open
    await service.reserve_hospital("member-1", hospital_request(venue, doctor, datetime(2024, 5, 3, 10, 30)))


@pytest.mark.asyncio
async def test_venue_wide_closing_applies_to_every_doctor(test_session, venue, doctor, clock):
    second = await VenueService(test_session).add_doctor(AddDoctorRequest(venue_id=str(venue.id), name="Dr. Yoon"))
    await _close(test_session, venue, [time(10, 0)])
    service = ReservationService(test_session, clock=clock)

    for each in (doctor, second):
        with pytest.raises(SlotClosedError):
            await service.reserve_hospital("member-1", hospital_request(venue, each, VISIT))


@pytest.mark.asyncio
async def test_unavailable_times_merge_booked_and_closed(test_session, venue, doctor, clock):
    service = ReservationService(test_session, clock=clock)
    await service.reserve_hospital("member-1", hospital_request(venue, doctor, datetime(2024, 5, 3, 11, 0)))
    await _close(test_session, venue, [time(15, 0), time(10, 0)], doctor=doctor)
    await _close(test_session, venue, [time(11, 0), time(16, 30)])

    times = await service.list_unavailable_times(str(doctor.id), VISIT.date())

    assert times == [
        datetime(2024, 5, 3, 10, 0),
        datetime(2024, 5, 3, 11, 0),
        datetime(2024, 5, 3, 15, 0),
        datetime(2024, 5, 3, 16, 30),
    ]


@pytest.mark.asyncio
async def test_setting_closed_times_replaces_the_day(test_session, venue, doctor, clock):
    await _close(test_session, venue, [time(10, 0), time(10, 30)], doctor=doctor)
    await _close(test_session, venue, [time(14, 0)], doctor=doctor)
    service = ReservationService(test_session, clock=clock)

    assert await service.list_unavailable_times(str(doctor.id), VISIT.date()) == [datetime(2024, 5, 3, 14, 0)]

    await _close(test_session, venue, [], doctor=doctor)
    assert await service.list_unavailable_times(str(doctor.id), VISIT.date()) == []


@pytest.mark.asyncio
async def test_closed_times_must_be_on_the_grid(test_session, venue, doctor):
    with pytest.raises(ValidationError):
        await _close(test_session, venue, [time(10, 15)], doctor=doctor)


@pytest.mark.asyncio
async def test_member_listing_spans_both_kinds_latest_visit_first(test_session, venue, doctor, clock):
    service = ReservationService(test_session, clock=clock)
    early = await service.reserve_hospital("member-1", hospital_request(venue, doctor, VISIT))
    stay = await service.reserve_hotel("member-1", hotel_request(venue, date(2024, 5, 10), date(2024, 5, 12)))
    late = await service.reserve_hospital("member-1", hospital_request(venue, doctor, datetime(2024, 5, 20, 11, 0)))
    await service.reserve_hospital("member-2", hospital_request(venue, doctor, datetime(2024, 5, 3, 11, 0)))

    items, total = await service.list_reservations(member_id="member-1")
    assert total == 3
    assert [r.id for r in items] == [late.id, stay.id, early.id]

    first_page, _ = await service.list_reservations(member_id="member-1", page=0, size=2)
    second_page, _ = await service.list_reservations(member_id="member-1", page=1, size=2)
    assert [r.id for r in first_page + second_page] == [late.id, stay.id, early.id]

    hotels, hotel_total = await service.list_reservations(member_id="member-1", kind=ReservationKind.HOTEL)
    assert ([r.id for r in hotels], hotel_total) == ([stay.id], 1)


@pytest.mark.asyncio
async def test_admin_listing_filters_by_day_status_and_doctor(test_session, venue, doctor, clock):
    service = ReservationService(test_session, clock=clock)
    visit = await service.reserve_hospital("member-1", hospital_request(venue, doctor, VISIT))
    stay = await service.reserve_hotel("member-2", hotel_request(venue, date(2024, 5, 2), date(2024, 5, 4)))
    await service.reserve_hotel("member-1", hotel_request(venue, date(2024, 5, 10), date(2024, 5, 12)))
    await service.confirm("HOTEL", stay.id)

    on_day, total = await service.list_reservations(venue_id=str(venue.id), day=VISIT.date())
    assert total == 2
    assert {r.id for r in on_day} == {visit.id, stay.id}

    confirmed, _ = await service.list_reservations(venue_id=str(venue.id), status=ReservationStatus.CONFIRMED)
    assert [r.id for r in confirmed] == [stay.id]

    by_doctor, doctor_total = await service.list_reservations(venue_id=str(venue.id), doctor_id=str(doctor.id))
    assert ([r.id for r in by_doctor], doctor_total) == ([visit.id], 1)
