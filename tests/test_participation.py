import asyncio

import pytest

from helpers import add_participant, add_ride, add_user, fetch_all, run, setup_test_db

from rideshare.models import Participant, ParticipantStatus, RideStatus
from rideshare.services import participation
from rideshare.services.errors import (
    AlreadyParticipating,
    ContactsForbidden,
    InvalidTransition,
    NotParticipating,
    RideNotActive,
    RideNotFound,
)
from rideshare.services.participation import ParticipantEvent


def test_transition_table():
    S = ParticipantStatus
    assert participation.next_status(None, ParticipantEvent.JOIN_DEFERRED) == S.PENDING_PAYMENT
    assert participation.next_status(S.LEFT, ParticipantEvent.JOIN_SETTLED) == S.ACTIVE
    assert participation.next_status(S.PENDING_PAYMENT, ParticipantEvent.PAYMENT_FAILED) == S.PENDING_PAYMENT
    assert set(participation.sources_for(ParticipantEvent.LEAVE)) == {S.PENDING_PAYMENT, S.ACTIVE}
    assert participation.target_for(ParticipantEvent.RIDE_CANCELLED) == S.CANCELLED_RIDE


@pytest.mark.parametrize(
    "current, event",
    [
        (ParticipantStatus.ACTIVE, ParticipantEvent.JOIN_DEFERRED),
        (ParticipantStatus.CANCELLED_RIDE, ParticipantEvent.JOIN_SETTLED),
        (ParticipantStatus.LEFT, ParticipantEvent.PAYMENT_SUCCEEDED),
        (None, ParticipantEvent.LEAVE),
    ],
)
def test_invalid_transitions_raise(current, event):
    with pytest.raises(InvalidTransition):
        participation.next_status(current, event)


def test_join_waits_for_payment(tmp_path):
    database = setup_test_db(tmp_path)
    creator = add_user(database)
    joiner = add_user(database)
    ride_id = add_ride(database, creator)

    participant = run(database, participation.join_ride, ride_id, joiner)

    assert participant.status == ParticipantStatus.PENDING_PAYMENT
    assert run(database, participation.get_participation_status, ride_id, joiner) == "pending_payment"


def test_second_join_rejected(tmp_path):
    database = setup_test_db(tmp_path)
    creator = add_user(database)
    joiner = add_user(database)
    ride_id = add_ride(database, creator)
    run(database, participation.join_ride, ride_id, joiner)

    with pytest.raises(AlreadyParticipating):
        run(database, participation.join_ride, ride_id, joiner)

    assert len(fetch_all(database, Participant, Participant.ride_id == ride_id)) == 1


def test_join_cancelled_ride_rejected(tmp_path):
    database = setup_test_db(tmp_path)
    creator = add_user(database)
    ride_id = add_ride(database, creator, status=RideStatus.CANCELLED)

    with pytest.raises(RideNotActive):
        run(database, participation.join_ride, ride_id, add_user(database))

    assert fetch_all(database, Participant, Participant.ride_id == ride_id) == []


def test_leave_then_rejoin_reuses_row(tmp_path):
    database = setup_test_db(tmp_path)
    creator = add_user(database)
    joiner = add_user(database)
    ride_id = add_ride(database, creator)
    first = run(database, participation.join_ride, ride_id, joiner)

    run(database, participation.leave_ride, ride_id, joiner)
    assert run(database, participation.get_participation_status, ride_id, joiner) == "left"

    again = run(database, participation.join_ride, ride_id, joiner)
    assert again.id == first.id
    assert again.status == ParticipantStatus.PENDING_PAYMENT


def test_leave_active_frees_seat(tmp_path):
    database = setup_test_db(tmp_path)
    creator = add_user(database)
    rider = add_user(database)
    ride_id = add_ride(database, creator, total_seats=1)
    add_participant(database, ride_id, rider, ParticipantStatus.ACTIVE)

    run(database, participation.leave_ride, ride_id, rider)

    newcomer = run(database, participation.join_ride, ride_id, add_user(database))
    assert newcomer.status == ParticipantStatus.PENDING_PAYMENT


def test_leave_without_participation(tmp_path):
    database = setup_test_db(tmp_path)
    creator = add_user(database)
    joiner = add_user(database)
    ride_id = add_ride(database, creator)

    with pytest.raises(NotParticipating):
        run(database, participation.leave_ride, ride_id, joiner)

    add_participant(database, ride_id, joiner, ParticipantStatus.LEFT)
    with pytest.raises(NotParticipating):
        run(database, participation.leave_ride, ride_id, joiner)


def test_concurrent_manual_joins_by_same_user(tmp_path):
    database = setup_test_db(tmp_path)
    creator = add_user(database)
    joiner = add_user(database)
    ride_id = add_ride(database, creator)

    async def attempt():
        async with database.session() as db:
            return await participation.join_ride(db, ride_id, joiner)

    async def race():
        return await asyncio.gather(*(attempt() for _ in range(4)), return_exceptions=True)

    results = asyncio.run(race())

    joined = [r for r in results if isinstance(r, Participant)]
    rejected = [r for r in results if isinstance(r, AlreadyParticipating)]
    assert len(joined) == 1
    assert len(rejected) == 3
    assert len(fetch_all(database, Participant, Participant.ride_id == ride_id)) == 1


def test_status_of_stranger_and_missing_ride(tmp_path):
    database = setup_test_db(tmp_path)
    creator = add_user(database)
    ride_id = add_ride(database, creator)

    assert run(database, participation.get_participation_status, ride_id, add_user(database)) == "not_participant"
    with pytest.raises(RideNotFound):
        run(database, participation.get_participation_status, "missing", creator)


def test_contacts_visible_to_creator_and_active_members(tmp_path):
    database = setup_test_db(tmp_path)
    creator = add_user(database)
    rider = add_user(database)
    pending = add_user(database)
    ride_id = add_ride(database, creator)
    add_participant(database, ride_id, rider, ParticipantStatus.ACTIVE)
    add_participant(database, ride_id, pending, ParticipantStatus.PENDING_PAYMENT)

    for requester in (creator, rider):
        contacts = run(database, participation.get_ride_contacts, ride_id, requester)
        assert [c.user_id for c in contacts] == [creator, rider]
        assert contacts[0].is_creator and not contacts[1].is_creator
        assert all(c.phone for c in contacts)

    with pytest.raises(ContactsForbidden):
        run(database, participation.get_ride_contacts, ride_id, pending)


def test_contacts_hidden_after_leaving(tmp_path):
    database = setup_test_db(tmp_path)
    creator = add_user(database)
    rider = add_user(database)
    ride_id = add_ride(database, creator)
    add_participant(database, ride_id, rider, ParticipantStatus.ACTIVE)

    run(database, participation.leave_ride, ride_id, rider)

    with pytest.raises(ContactsForbidden):
        run(database, participation.get_ride_contacts, ride_id, rider)
    contacts = run(database, participation.get_ride_contacts, ride_id, creator)
    assert [c.user_id for c in contacts] == [creator]
