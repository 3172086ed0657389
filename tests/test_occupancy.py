import pytest

from marina.models.models import AuditLog, RESOURCE_AVAILABLE, RESOURCE_OCCUPIED
from marina.services import occupancy
from marina.services.errors import LedgerValidationError, NotFoundError


def _tenant_entry(account):
    return {"uid": str(account.id), "name": account.name, "phone": account.phone, "email": account.email}


def test_remove_last_tenant_frees_the_berth(db, make_account, make_resource):
    t1 = make_account(name="T1")
    b7 = make_resource(
        "B7",
        occupant_ids=[str(t1.id)],
        tenants=[_tenant_entry(t1)],
        invoice_responsible_id=str(t1.id),
        status=RESOURCE_OCCUPIED,
    )

    resource = occupancy.remove_tenant(db, b7.id, t1.id)

    assert resource.occupant_ids == []
    assert resource.tenants == []
    assert resource.status == RESOURCE_AVAILABLE
    assert resource.invoice_responsible_id is None


def test_remove_tenant_moves_invoice_to_next_tenant(db, make_account, make_resource):
    t1 = make_account(name="T1")
    t2 = make_account(name="T2")
    berth = make_resource(
        "B8",
        occupant_ids=[str(t1.id), str(t2.id)],
        tenants=[_tenant_entry(t1), _tenant_entry(t2)],
        invoice_responsible_id=str(t1.id),
        status=RESOURCE_OCCUPIED,
    )

    resource = occupancy.remove_tenant(db, berth.id, t1.id)

    assert resource.occupant_ids == [str(t2.id)]
    assert resource.invoice_responsible_id == str(t2.id)
    assert resource.status == RESOURCE_OCCUPIED
    assert db.query(AuditLog).filter(AuditLog.action == "REMOVE_TENANT").count() == 1


def test_assign_tenants_dedupes_and_derives_status(db, make_account, make_resource):
    t1 = make_account(name="T1")
    t2 = make_account(name="T2")
    berth = make_resource("B9")

    resource = occupancy.assign_tenants(db, berth.id, [t1.id, str(t1.id), t2.id])
    assert resource.occupant_ids == [str(t1.id), str(t2.id)]
    assert resource.status == RESOURCE_OCCUPIED

    resource = occupancy.assign_tenants(db, berth.id, [])
    assert resource.occupant_ids == []
    assert resource.status == RESOURCE_AVAILABLE


def test_assign_tenants_prunes_tenants_and_repairs_invoice(db, make_account, make_resource):
    t1 = make_account(name="T1")
    t2 = make_account(name="T2")
    berth = make_resource(
        "B10",
        occupant_ids=[str(t1.id), str(t2.id)],
        tenants=[_tenant_entry(t1), _tenant_entry(t2)],
        invoice_responsible_id=str(t1.id),
        status=RESOURCE_OCCUPIED,
    )

    resource = occupancy.assign_tenants(db, berth.id, [t2.id])

    assert [t["uid"] for t in resource.tenants] == [str(t2.id)]
    assert resource.invoice_responsible_id == str(t2.id)


def test_set_invoice_responsible_requires_a_tenant(db, make_account, make_resource):
    t1 = make_account(name="T1")
    outsider = make_account(name="Outsider")
    berth = make_resource(
        "B11",
        occupant_ids=[str(t1.id)],
        tenants=[_tenant_entry(t1)],
        invoice_responsible_id=str(t1.id),
        status=RESOURCE_OCCUPIED,
    )

    with pytest.raises(LedgerValidationError):
        occupancy.set_invoice_responsible(db, berth.id, outsider.id)

    resource = occupancy.set_invoice_responsible(db, berth.id, t1.id)
    assert resource.invoice_responsible_id == str(t1.id)


def test_second_hand_tenant_is_never_an_occupant(db, make_account, make_resource):
    t1 = make_account(name="T1")
    sub = make_account(name="Sub")
    berth = make_resource(
        "B12",
        occupant_ids=[str(t1.id)],
        tenants=[_tenant_entry(t1)],
        invoice_responsible_id=str(t1.id),
        status=RESOURCE_OCCUPIED,
    )

    with pytest.raises(LedgerValidationError):
        occupancy.set_second_hand_tenant(db, berth.id, sub.id)

    occupancy.toggle_second_hand(db, berth.id, True)
    with pytest.raises(LedgerValidationError):
        occupancy.set_second_hand_tenant(db, berth.id, t1.id)

    resource = occupancy.set_second_hand_tenant(db, berth.id, sub.id, invoice_directly=True)
    assert resource.second_hand_tenant_id == str(sub.id)
    assert resource.invoice_second_hand_tenant_directly is True

    with pytest.raises(LedgerValidationError):
        occupancy.assign_tenants(db, berth.id, [t1.id, sub.id])


def test_disabling_second_hand_clears_dependents(db, make_account, make_resource):
    sub = make_account(name="Sub")
    berth = make_resource(
        "B13",
        allow_second_hand=True,
        second_hand_tenant_id=str(sub.id),
        invoice_second_hand_tenant_directly=True,
    )

    resource = occupancy.toggle_second_hand(db, berth.id, False)

    assert resource.allow_second_hand is False
    assert resource.second_hand_tenant_id is None
    assert resource.invoice_second_hand_tenant_directly is False


@pytest.mark.parametrize("prices, legacy, expected", [
    ({"2026": 9000}, {}, 9000),
    ({"2025": 8000}, {}, 8000),
    ({}, {"price_2026": 7000, "price_2025": 6000}, 7000),
    ({}, {"price_2025": 6000}, 6000),
    ({"2023": 5000}, {}, None),
])
def test_resolve_default_price(make_resource, prices, legacy, expected):
    berth = make_resource("P1", prices=prices, **legacy)
    assert occupancy.resolve_default_price(berth, 2026) == expected


def test_record_tenant_writes_snapshot_invoice_and_price(make_account, make_resource):
    t1 = make_account(name="T1", phone="0701112233")
    berth = make_resource("B14", prices={"2025": 8000})

    occupancy.record_tenant(berth, t1, price=9000, year=2026)

    assert berth.status == RESOURCE_OCCUPIED
    assert berth.tenants == [_tenant_entry(t1)]
    assert berth.invoice_responsible_id == str(t1.id)
    assert berth.prices == {"2025": 8000, "2026": 9000}


def test_assign_land_storage(db, make_account, make_land_storage):
    owner = make_account(name="Owner")
    make_land_storage("4821")

    entry = occupancy.assign_land_storage(db, "4821", owner.id)
    assert entry.occupant_id == str(owner.id)
    assert entry.status == RESOURCE_OCCUPIED

    entry = occupancy.assign_land_storage(db, "4821", None)
    assert entry.occupant_id is None
    assert entry.status == RESOURCE_AVAILABLE

    with pytest.raises(NotFoundError):
        occupancy.assign_land_storage(db, "0000", owner.id)
