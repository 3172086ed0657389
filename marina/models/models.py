import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Column,
    String,
    DateTime,
    Boolean,
    ForeignKey,
    Table,
    Integer,
    Float,
    JSON,
    UniqueConstraint,
    Text,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, Mapped, mapped_column, validates

from ..db import Base
from ..services.state_machine import transition_interest, transition_offer


def uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)


ROLE_TENANT = "Tenant"
ROLE_DOCK_MANAGER = "Dock Manager"
ROLE_SUPERADMIN = "Superadmin"
ROLES = {ROLE_TENANT, ROLE_DOCK_MANAGER, ROLE_SUPERADMIN}

RESOURCE_AVAILABLE = "Available"
RESOURCE_OCCUPIED = "Occupied"


# Association table for many-to-many Dock<->Account (managers)
dock_managers = Table(
    "dock_managers",
    Base.metadata,
    Column("dock_id", UUID(as_uuid=True), ForeignKey("docks.id", ondelete="CASCADE"), primary_key=True),
    Column("account_id", UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True),
    UniqueConstraint("dock_id", "account_id", name="uq_dock_manager"),
)


class Account(Base):
    """Mirror of the identity record owned by the external auth service."""
    __tablename__ = "accounts"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    email: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    role: Mapped[str] = mapped_column(String(30), nullable=False, default=ROLE_TENANT)  # Tenant|Dock Manager|Superadmin
    is_public: Mapped[bool] = mapped_column(Boolean, default=True)
    allow_map_sms: Mapped[bool] = mapped_column(Boolean, default=True)
    approved: Mapped[Optional[bool]] = mapped_column(Boolean)  # None = legacy account, treated as approved
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    managed_docks = relationship("Dock", secondary=dock_managers, back_populates="managers")


class Dock(Base):
    __tablename__ = "docks"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    prefix: Mapped[Optional[str]] = mapped_column(String(10))  # e.g. "A", "B"
    type: Mapped[str] = mapped_column(String(20), default="Association")  # Private|Association
    association_name: Mapped[Optional[str]] = mapped_column(String(255))

    managers = relationship("Account", secondary=dock_managers, back_populates="managed_docks")
    resources = relationship("Resource", back_populates="dock")


class Resource(Base):
    """A berth, sea hut or box together with its occupancy ledger."""
    __tablename__ = "resources"

    id: Mapped[uuid.UUID] = uuid_pk()
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="Berth")  # Berth|SeaHut|Box
    marking_code: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    dock_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("docks.id", ondelete="SET NULL"), index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=RESOURCE_AVAILABLE)  # Available|Occupied
    payment_status: Mapped[str] = mapped_column(String(20), default="Unpaid")  # Paid|Unpaid

    # Occupancy ledger
    occupant_ids: Mapped[list] = mapped_column(JSON, default=list)  # account ids (co-tenants)
    tenants: Mapped[list] = mapped_column(JSON, default=list)  # [{uid, name, phone, email}]
    invoice_responsible_id: Mapped[Optional[str]] = mapped_column(String(64))
    allow_second_hand: Mapped[bool] = mapped_column(Boolean, default=False)
    second_hand_tenant_id: Mapped[Optional[str]] = mapped_column(String(64))
    invoice_second_hand_tenant_directly: Mapped[bool] = mapped_column(Boolean, default=False)

    # Pricing
    prices: Mapped[dict] = mapped_column(JSON, default=dict)  # {"2025": 3500, "2026": 4000}
    price_2025: Mapped[Optional[float]] = mapped_column(Float)  # deprecated, use prices
    price_2026: Mapped[Optional[float]] = mapped_column(Float)  # deprecated, use prices

    # Contact snapshot from the paper register, matched by the identity resolver
    occupant_first_name: Mapped[Optional[str]] = mapped_column(String(100))
    occupant_last_name: Mapped[Optional[str]] = mapped_column(String(100))
    occupant_phone: Mapped[Optional[str]] = mapped_column(String(50))
    occupant_email: Mapped[Optional[str]] = mapped_column(String(255))
    comment: Mapped[Optional[str]] = mapped_column(Text)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    dock = relationship("Dock", back_populates="resources")

    __mapper_args__ = {"version_id_col": version}


class LandStorageEntry(Base):
    __tablename__ = "land_storage"

    id: Mapped[uuid.UUID] = uuid_pk()
    code: Mapped[str] = mapped_column(String(10), unique=True, nullable=False, index=True)  # 4-digit non-sequential code
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=RESOURCE_AVAILABLE)
    first_name: Mapped[Optional[str]] = mapped_column(String(100))
    last_name: Mapped[Optional[str]] = mapped_column(String(100))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    email: Mapped[Optional[str]] = mapped_column(String(255))
    occupant_id: Mapped[Optional[str]] = mapped_column(String(64))
    season: Mapped[Optional[str]] = mapped_column(String(20))  # Winter|Summer|Year-round
    comment: Mapped[Optional[str]] = mapped_column(Text)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)


class Interest(Base):
    """A prospective tenant's wish for a berth."""
    __tablename__ = "interests"

    id: Mapped[uuid.UUID] = uuid_pk()
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    user_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    email: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    boat_width: Mapped[float] = mapped_column(Float, nullable=False)  # meters
    boat_length: Mapped[float] = mapped_column(Float, nullable=False)  # meters
    preferred_dock_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("docks.id", ondelete="SET NULL"), index=True)
    preferred_berth_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("resources.id", ondelete="SET NULL"))
    message: Mapped[Optional[str]] = mapped_column(Text)
    image_url: Mapped[Optional[str]] = mapped_column(String(1024))
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Pending")  # Pending|Contacted|Resolved
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, index=True)
    last_seen_replies_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    accepted_offer_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    accepted_berth_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    accepted_berth_code: Mapped[Optional[str]] = mapped_column(String(50))

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    replies = relationship(
        "InterestReply",
        back_populates="interest",
        cascade="all, delete-orphan",
        order_by="InterestReply.created_at",
    )

    __mapper_args__ = {"version_id_col": version}

    @validates("status")
    def _check_status(self, key, value):
        return transition_interest(self.status, value).value


class InterestReply(Base):
    """A manager's (or the owner's) message on an interest, optionally carrying offers."""
    __tablename__ = "interest_replies"

    id: Mapped[uuid.UUID] = uuid_pk()
    interest_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("interests.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="SET NULL"))
    author_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    author_email: Mapped[Optional[str]] = mapped_column(String(255))
    author_phone: Mapped[Optional[str]] = mapped_column(String(50))
    message: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, index=True)

    offered_berths: Mapped[Optional[list]] = mapped_column(JSON)  # [{berth_id, berth_code, dock_name, price}]
    # Legacy single-offer fields, read for old replies only
    offered_berth_id: Mapped[Optional[str]] = mapped_column(String(64))
    offered_berth_code: Mapped[Optional[str]] = mapped_column(String(50))
    offered_dock_name: Mapped[Optional[str]] = mapped_column(String(100))
    offered_price: Mapped[Optional[float]] = mapped_column(Float)
    offer_status: Mapped[Optional[str]] = mapped_column(String(20))  # pending|accepted|declined

    interest = relationship("Interest", back_populates="replies")

    @validates("offer_status")
    def _check_offer_status(self, key, value):
        status = transition_offer(self.offer_status, value)
        return status.value if status else None


class Notification(Base):
    """One outbound message attempt"""
    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = uuid_pk()
    account_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="SET NULL"), index=True)
    channel: Mapped[str] = mapped_column(String(20), nullable=False, default="sms")
    destination: Mapped[Optional[str]] = mapped_column(String(50))
    template_key: Mapped[Optional[str]] = mapped_column(String(100))  # Template identifier
    payload_json: Mapped[Optional[dict]] = mapped_column(JSON)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    status: Mapped[str] = mapped_column(String(20), default="pending")  # pending|sent|failed|skipped
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    __table_args__ = (
        Index('idx_notifications_account_status', 'account_id', 'status'),
        Index('idx_notifications_created', 'created_at'),
    )


class AuditLog(Base):
    """Append-only audit log for ledger and negotiation changes"""
    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = uuid_pk()
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)  # interest|reply|resource|land_storage
    entity_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)  # STATUS_OVERRIDE|ACCEPT|REMOVE_TENANT|...
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="SET NULL"), index=True)
    actor_role: Mapped[Optional[str]] = mapped_column(String(50))
    source: Mapped[Optional[str]] = mapped_column(String(50))  # api|system|script
    changes_json: Mapped[Optional[dict]] = mapped_column(JSON)  # Before/after diff
    timestamp_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False, index=True)
    context: Mapped[Optional[dict]] = mapped_column(JSON)
    integrity_hash: Mapped[Optional[str]] = mapped_column(String(64))  # SHA256 hash for integrity verification

    __table_args__ = (
        Index('idx_audit_entity', 'entity_type', 'entity_id'),
        Index('idx_audit_actor', 'actor_id', 'timestamp_utc'),
    )


class ReconcileRun(Base):
    """One execution of the bulk identity reconcile job"""
    __tablename__ = "reconcile_runs"

    id: Mapped[uuid.UUID] = uuid_pk()
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="queued")  # queued|running|finished|failed
    requested_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="SET NULL"))
    accounts_scanned: Mapped[int] = mapped_column(Integer, default=0)
    links_created: Mapped[int] = mapped_column(Integer, default=0)
    failures: Mapped[Optional[list]] = mapped_column(JSON)  # [{account_id, target, error}]
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
