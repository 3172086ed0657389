import pytest
from sqlalchemy.orm.exc import StaleDataError

from marina.models.models import Account, Interest, InterestReply, ROLE_DOCK_MANAGER, RESOURCE_OCCUPIED
from marina.services import interests as intake
from marina.services import offers
from marina.services.errors import ConflictError, PermissionDenied
from marina.services.occupancy import current_year
from marina.services.offers import (
    MultiOffer,
    NoOffer,
    SingleOffer,
    classify_offers,
    compose_reply,
    offerable_berths,
    read_offers,
)


@pytest.fixture
def harbour(db, tenant, make_account, make_dock, make_resource):
    manager = make_account(name="M1", role=ROLE_DOCK_MANAGER)
    dock_a = make_dock(name="Brygga A", managers=[manager])
    dock_b = make_dock(name="Brygga B", prefix="B")
    berths = {
        "A2": make_resource("A2", dock_a, prices={str(current_year()): 8000}),
        "A1": make_resource("A1", dock_a),
        "A3": make_resource("A3", dock_a, status=RESOURCE_OCCUPIED),
        "B1": make_resource("B1", dock_b),
        "H1": make_resource("H1", dock_a, type="SeaHut"),
    }
    interest = intake.create_interest(db, tenant, {"boat_width": 3.0, "boat_length": 8.0})
    return manager, berths, interest


def test_offerable_berths_are_available_berths_in_scope(db, harbour, superadmin, tenant):
    manager, berths, _ = harbour

    assert [b.marking_code for b in offerable_berths(db, manager)] == ["A1", "A2"]
    assert [b.marking_code for b in offerable_berths(db, superadmin)] == ["A1", "A2", "B1"]
    assert offerable_berths(db, tenant) == []


def test_manager_reply_moves_pending_to_contacted(db, harbour):
    manager, berths, interest = harbour

    reply = compose_reply(db, manager, interest.id, "Vi har en plats", [{"berth_id": berths["A1"].id, "price": 9000}])

    db.refresh(interest)
    assert interest.status == "Contacted"
    assert reply.offer_status == "pending"
    offers = read_offers(reply)
    assert len(offers) == 1
    assert offers[0].berth_code == "A1"
    assert offers[0].dock_name == "Brygga A"
    assert offers[0].price == 9000


def test_offer_price_defaults_from_resource(db, harbour):
    manager, berths, interest = harbour
    reply = compose_reply(db, manager, interest.id, "Förslag", [{"berth_id": berths["A2"].id}])
    assert read_offers(reply)[0].price == 8000


def test_offer_outside_scope_is_refused(db, harbour):
    manager, berths, interest = harbour
    with pytest.raises(PermissionDenied):
        compose_reply(db, manager, interest.id, "Förslag", [{"berth_id": berths["B1"].id}])
    with pytest.raises(PermissionDenied):
        compose_reply(db, manager, interest.id, "Förslag", [{"berth_id": berths["A3"].id}])


def test_owner_reply_is_a_plain_message(db, harbour, tenant):
    _, berths, interest = harbour

    reply = compose_reply(db, tenant, interest.id, "Finns det plats på B?")
    db.refresh(interest)
    assert interest.status == "Pending"
    assert reply.offer_status is None

    with pytest.raises(PermissionDenied):
        compose_reply(db, tenant, interest.id, "Jag tar A1", [{"berth_id": berths["A1"].id}])


def test_no_offers_on_resolved_interest(db, harbour, superadmin):
    manager, berths, interest = harbour
    intake.set_interest_status(db, superadmin, interest.id, "Resolved")
    with pytest.raises(ConflictError):
        compose_reply(db, manager, interest.id, "Sent", [{"berth_id": berths["A1"].id}])


def test_legacy_single_offer_is_normalized():
    legacy = InterestReply(
        message="old",
        offered_berth_id="abc",
        offered_berth_code="C4",
        offered_dock_name="Brygga C",
        offered_price=7500,
    )
    shape = classify_offers(legacy)
    assert isinstance(shape, SingleOffer)
    offers = read_offers(legacy)
    assert [(o.berth_id, o.berth_code, o.dock_name, o.price) for o in offers] == [("abc", "C4", "Brygga C", 7500)]


def test_list_shape_accepts_camel_case_keys():
    reply = InterestReply(
        message="list",
        offered_berths=[{"berthId": "x1", "berthCode": "A1", "dockName": "Brygga A", "price": 100}],
    )
    assert isinstance(classify_offers(reply), MultiOffer)
    assert read_offers(reply)[0].berth_code == "A1"
    assert isinstance(classify_offers(InterestReply(message="hej")), NoOffer)
    assert read_offers(InterestReply(message="hej")) == []


def test_concurrent_manager_replies_are_both_kept(db, harbour, superadmin):
    from conftest import TestingSessionLocal

    manager, berths, interest = harbour
    first = TestingSessionLocal()
    second = TestingSessionLocal()
    try:
        # both sessions hold the Pending interest before either replies
        assert first.get(Interest, interest.id).status == "Pending"
        assert second.get(Interest, interest.id).status == "Pending"

        compose_reply(second, second.get(Account, superadmin.id), interest.id, "B1 är ledig",
                      [{"berth_id": berths["B1"].id}])
        late = compose_reply(first, first.get(Account, manager.id), interest.id, "A1 är ledig",
                             [{"berth_id": berths["A1"].id}])
        assert read_offers(late)[0].berth_code == "A1"
    finally:
        first.close()
        second.close()

    db.expire_all()
    replies = db.query(InterestReply).filter(InterestReply.interest_id == interest.id).all()
    assert sorted(read_offers(r)[0].berth_code for r in replies) == ["A1", "B1"]
    assert db.get(Interest, interest.id).status == "Contacted"


def test_reply_write_conflict_is_retried(db, harbour, monkeypatch):
    manager, berths, interest = harbour
    real_store = offers._store_reply
    calls = {"n": 0}

    def racing_store(*args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            raise StaleDataError("UPDATE statement on table 'interests' expected to update 1 row(s); 0 were matched.")
        return real_store(*args, **kwargs)

    monkeypatch.setattr(offers, "_store_reply", racing_store)

    reply = compose_reply(db, manager, interest.id, "Vi har en plats", [{"berth_id": berths["A1"].id}])

    assert calls["n"] == 2
    assert db.query(InterestReply).filter(InterestReply.id == reply.id).count() == 1


def test_reply_write_conflict_on_every_attempt_is_a_conflict(db, harbour, monkeypatch):
    manager, _, interest = harbour

    def always_stale(*args, **kwargs):
        raise StaleDataError("stale")

    monkeypatch.setattr(offers, "_store_reply", always_stale)

    with pytest.raises(ConflictError):
        compose_reply(db, manager, interest.id, "Hej", max_attempts=2)
