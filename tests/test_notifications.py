from urllib.parse import parse_qs

import httpx
import pytest

from marina.config import settings
from marina.models.models import Notification, ROLE_SUPERADMIN
from marina.services import interests as intake
from marina.services.notifications import (
    notify_interest_created,
    notify_interest_reply,
    send_sms_notification,
    sms_destination,
)
from marina.services.offers import compose_reply
from marina.services.sms_client import ElksSmsGateway


def test_sms_destination_reasons(make_account, monkeypatch):
    mobile = make_account(phone="+46 70-123 45 67")
    landline = make_account(phone="08-123 456 78")
    opted_out = make_account(allow_map_sms=False)

    assert sms_destination(mobile) == ("0701234567", None)
    assert sms_destination(landline) == (None, "not_mobile")
    assert sms_destination(opted_out) == (None, "opted_out")
    assert sms_destination(None) == (None, "no_account")

    monkeypatch.setattr(settings, "enable_sms", False)
    assert sms_destination(mobile) == (None, "sms_disabled")


def test_fallback_phone_is_used_when_profile_has_none(make_account):
    account = make_account(phone="")
    assert sms_destination(account, fallback_phone="0731234567") == ("0731234567", None)


def test_every_attempt_is_recorded(db, make_account, sms):
    sent_to = make_account(phone="0701234567")
    skipped = make_account(allow_map_sms=False)

    assert send_sms_notification(db, sms, sent_to, "test", "hej") == "sent"
    assert send_sms_notification(db, sms, skipped, "test", "hej") == "skipped"
    assert send_sms_notification(db, None, sent_to, "test", "hej") == "skipped"

    rows = {n.status for n in db.query(Notification).all()}
    assert rows == {"sent", "skipped"}
    assert sms.recipients() == ["0701234567"]


def test_gateway_rejection_is_recorded_as_failed(db, make_account):
    from conftest import FakeSmsGateway

    account = make_account(phone="0701234567")
    assert send_sms_notification(db, FakeSmsGateway(fail=True), account, "test", "hej") == "failed"
    row = db.query(Notification).one()
    assert row.status == "failed"
    assert row.error_message == "rejected"


def test_reply_notifies_owner_but_not_for_own_replies(db, tenant, superadmin, sms):
    interest = intake.create_interest(db, tenant, {"boat_width": 3, "boat_length": 9})

    own = compose_reply(db, tenant, interest.id, "En fråga")
    assert notify_interest_reply(db, sms, interest, own) is None

    answer = compose_reply(db, superadmin, interest.id, "Svar")
    assert notify_interest_reply(db, sms, interest, answer) == "sent"
    assert sms.recipients() == [tenant.phone]


def test_new_interest_alerts_superadmins(db, tenant, make_account, sms):
    make_account(name="Admin 1", role=ROLE_SUPERADMIN, phone="0709990001")
    make_account(name="Admin 2", role=ROLE_SUPERADMIN, phone="0709990002")
    interest = intake.create_interest(db, tenant, {"boat_width": 3, "boat_length": 9, "message": "Segelbåt"})

    outcome = notify_interest_created(db, sms, interest)

    assert outcome.sent == 2
    assert sorted(sms.recipients()) == ["0709990001", "0709990002"]
    assert "Segelbåt" in sms.sent[0][1]


def test_elks_gateway_posts_form_data_in_e164():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "s123", "status": "created"})

    gateway = ElksSmsGateway(
        username="u",
        password="p",
        sender="Hamnen",
        api_url="https://sms.test/a1/sms",
        transport=httpx.MockTransport(handler),
    )
    results = gateway.send(["0701234567", "0731234567"], "Hej")

    assert [r.success for r in results] == [True, True]
    assert results[0].id == "s123"
    form = parse_qs(seen[0].content.decode())
    assert form == {"from": ["Hamnen"], "to": ["+46701234567"], "message": ["Hej"]}
    assert seen[0].headers["authorization"].startswith("Basic ")


def test_elks_gateway_reports_rejections_per_recipient():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, text="Invalid to")

    gateway = ElksSmsGateway(username="u", password="p", transport=httpx.MockTransport(handler))
    results = gateway.send("0701234567", "Hej")

    assert len(results) == 1
    assert results[0].success is False
    assert "403" in results[0].error


def test_elks_gateway_requires_credentials(monkeypatch):
    monkeypatch.setattr(settings, "elks_username", None)
    monkeypatch.setattr(settings, "elks_password", None)
    with pytest.raises(ValueError):
        ElksSmsGateway()
