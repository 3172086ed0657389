from typing import List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from marina.auth.security import create_access_token
from marina.db import Base, get_db, get_session_factory
from marina.models.models import (
    Account,
    Dock,
    LandStorageEntry,
    Resource,
    ROLE_DOCK_MANAGER,
    ROLE_SUPERADMIN,
    ROLE_TENANT,
)
from marina.services.account_admin_client import get_account_admin_client
from marina.services.sms_client import SmsResult, get_sms_gateway


engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


class FakeSmsGateway:
    """Records every message; can be told to fail."""

    def __init__(self, fail: bool = False, raise_error: bool = False):
        self.fail = fail
        self.raise_error = raise_error
        self.sent = []

    def send(self, destination, message) -> List[SmsResult]:
        recipients = [destination] if isinstance(destination, str) else list(destination)
        if self.raise_error:
            raise RuntimeError("gateway down")
        results = []
        for to in recipients:
            self.sent.append((to, message))
            if self.fail:
                results.append(SmsResult(to=to, success=False, error="rejected"))
            else:
                results.append(SmsResult(to=to, success=True, id="sms-1"))
        return results

    def recipients(self) -> List[str]:
        return [to for to, _ in self.sent]


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def sms():
    return FakeSmsGateway()


@pytest.fixture
def make_account(db):
    counter = {"n": 0}

    def _make(
        name: str = "Anna Andersson",
        role: str = ROLE_TENANT,
        phone: Optional[str] = None,
        email: Optional[str] = None,
        approved: Optional[bool] = True,
        allow_map_sms: bool = True,
    ) -> Account:
        counter["n"] += 1
        account = Account(
            name=name,
            role=role,
            phone=phone if phone is not None else f"07012300{counter['n']:02d}",
            email=email if email is not None else f"user{counter['n']}@example.se",
            approved=approved,
            allow_map_sms=allow_map_sms,
        )
        db.add(account)
        db.commit()
        db.refresh(account)
        return account

    return _make


@pytest.fixture
def make_dock(db):
    def _make(name: str = "Brygga A", prefix: str = "A", managers: Optional[List[Account]] = None) -> Dock:
        dock = Dock(name=name, prefix=prefix)
        dock.managers = list(managers or [])
        db.add(dock)
        db.commit()
        db.refresh(dock)
        return dock

    return _make


@pytest.fixture
def make_resource(db):
    def _make(marking_code: str, dock: Optional[Dock] = None, **fields) -> Resource:
        fields.setdefault("type", "Berth")
        resource = Resource(marking_code=marking_code, dock_id=dock.id if dock else None, **fields)
        db.add(resource)
        db.commit()
        db.refresh(resource)
        return resource

    return _make


@pytest.fixture
def make_land_storage(db):
    def _make(code: str, **fields) -> LandStorageEntry:
        entry = LandStorageEntry(code=code, **fields)
        db.add(entry)
        db.commit()
        db.refresh(entry)
        return entry

    return _make


@pytest.fixture
def superadmin(make_account):
    return make_account(name="Sara Superadmin", role=ROLE_SUPERADMIN, phone="0709990000")


@pytest.fixture
def tenant(make_account):
    return make_account(name="Tove Tenant", phone="0701234567", email="tove@example.se")


@pytest.fixture
def manager(make_account):
    return make_account(name="Magnus Manager", role=ROLE_DOCK_MANAGER, phone="0705550001")


class FakeAccountAdminClient:
    def __init__(self, result):
        self.result = result
        self.calls = []

    def approve_user(self, bearer_token, uid):
        self.calls.append(("approve", uid))
        return self.result

    def set_password(self, bearer_token, uid, new_password):
        self.calls.append(("password", uid))
        return self.result

    def delete_user(self, bearer_token, uid):
        self.calls.append(("delete", uid))
        return self.result


@pytest.fixture
def admin_client_result():
    from marina.services.account_admin_client import AccountAdminResult

    return AccountAdminResult(success=True)


@pytest.fixture
def account_admin(admin_client_result):
    return FakeAccountAdminClient(admin_client_result)


@pytest.fixture
def client(db, sms, account_admin):
    from marina.main import app

    app.state.limiter.reset()

    def _get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_sms_gateway] = lambda: sms
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    app.dependency_overrides[get_account_admin_client] = lambda: account_admin
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_headers(account: Account) -> dict:
    return {"Authorization": f"Bearer {create_access_token(account.id, account.role)}"}


@pytest.fixture
def headers():
    return auth_headers
