"""
Identity resolver: link accounts to ledger entries that already carry
the account's phone number or email.

Links only ever get added. Each link is independent and safe to repeat, so the
bulk run commits per link, keeps going past failures and can be re-run.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import Account, LandStorageEntry, ReconcileRun, Resource, RESOURCE_OCCUPIED
from .errors import LedgerValidationError
from .occupancy import link_occupant
from .phone import emails_match, normalize_email, normalize_phone, phones_match


logger = structlog.get_logger(__name__)


@dataclass
class ReconcileSummary:
    accounts_scanned: int = 0
    links_created: int = 0
    failures: List[Dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "accounts_scanned": self.accounts_scanned,
            "links_created": self.links_created,
            "failures": list(self.failures),
        }


def _contact_matches(account: Account, phone: Optional[str], email: Optional[str]) -> bool:
    return phones_match(account.phone, phone) or emails_match(account.email, email)


def resource_matches(account: Account, resource: Resource) -> bool:
    if str(account.id) in (resource.occupant_ids or []):
        return False
    if resource.second_hand_tenant_id == str(account.id):
        return False
    return _contact_matches(account, resource.occupant_phone, resource.occupant_email)


def land_storage_matches(account: Account, entry: LandStorageEntry) -> bool:
    # an entry already linked to someone (including this account) is left alone
    if entry.occupant_id:
        return False
    return _contact_matches(account, entry.phone, entry.email)


def _link_land_storage(entry: LandStorageEntry, account: Account) -> None:
    entry.occupant_id = str(account.id)
    entry.status = RESOURCE_OCCUPIED


def reconcile_account(db: Session, account: Account) -> int:
    """Link one account (session start). Returns the number of new links."""
    if not normalize_phone(account.phone) and not normalize_email(account.email):
        return 0

    created = 0
    for resource in db.query(Resource).all():
        if resource_matches(account, resource):
            link_occupant(resource, account.id)
            created += 1
    for entry in db.query(LandStorageEntry).filter(LandStorageEntry.occupant_id.is_(None)).all():
        if land_storage_matches(account, entry):
            _link_land_storage(entry, account)
            created += 1

    if created:
        db.commit()
        logger.info("identity_linked", account_id=str(account.id), links=created)
    return created


def _apply_with_retry(db: Session, apply: Callable[[], bool], attempts: int) -> bool:
    last_error: Optional[Exception] = None
    for attempt in range(1, attempts + 1):
        try:
            changed = apply()
            if changed:
                db.commit()
            return changed
        except SQLAlchemyError as e:
            db.rollback()
            last_error = e
            logger.warning("identity_link_retry", attempt=attempt, error=str(e))
    raise last_error


def reconcile_all(db: Session, max_attempts: Optional[int] = None) -> ReconcileSummary:
    """
    Bulk reconcile across every account and ledger entry.

    Each (account, entry) pair is re-read and committed on its own, retried on
    database errors and skipped with a logged failure if it keeps failing.
    """
    attempts = max_attempts or settings.reconcile_max_attempts
    summary = ReconcileSummary()

    account_ids = [row[0] for row in db.query(Account.id).order_by(Account.created_at).all()]
    resource_ids = [row[0] for row in db.query(Resource.id).all()]
    land_ids = [row[0] for row in db.query(LandStorageEntry.id).all()]

    for account_id in account_ids:
        account = db.get(Account, account_id)
        if account is None:
            continue
        summary.accounts_scanned += 1
        if not normalize_phone(account.phone) and not normalize_email(account.email):
            continue

        for resource_id in resource_ids:
            def link_resource(resource_id=resource_id) -> bool:
                resource = db.get(Resource, resource_id)
                if resource is None or not resource_matches(account, resource):
                    return False
                return link_occupant(resource, account.id)

            _run_pair(db, summary, account, f"resource:{resource_id}", link_resource, attempts)

        for entry_id in land_ids:
            def link_entry(entry_id=entry_id) -> bool:
                entry = db.get(LandStorageEntry, entry_id)
                if entry is None or not land_storage_matches(account, entry):
                    return False
                _link_land_storage(entry, account)
                return True

            _run_pair(db, summary, account, f"land_storage:{entry_id}", link_entry, attempts)

    logger.info(
        "identity_reconcile_finished",
        accounts=summary.accounts_scanned,
        links=summary.links_created,
        failures=len(summary.failures),
    )
    return summary


def _run_pair(
    db: Session,
    summary: ReconcileSummary,
    account: Account,
    target: str,
    apply: Callable[[], bool],
    attempts: int,
) -> None:
    try:
        if _apply_with_retry(db, apply, attempts):
            summary.links_created += 1
    except (SQLAlchemyError, LedgerValidationError) as e:
        db.rollback()
        logger.error("identity_link_failed", account_id=str(account.id), target=target, error=str(e))
        summary.failures.append({"account_id": str(account.id), "target": target, "error": str(e)})


def start_reconcile_run(db: Session, requested_by: Optional[Account] = None) -> ReconcileRun:
    run = ReconcileRun(status="queued", requested_by=requested_by.id if requested_by else None)
    db.add(run)
    db.commit()
    db.refresh(run)
    return run


def execute_reconcile_run(run_id: Any, session_factory: Callable[[], Session]) -> None:
    """Background job body: run the bulk reconcile and store its summary on the run."""
    db = session_factory()
    try:
        run = db.get(ReconcileRun, run_id)
        if run is None:
            logger.warning("reconcile_run_missing", run_id=str(run_id))
            return
        run.status = "running"
        db.commit()
        try:
            summary = reconcile_all(db)
        except Exception as e:
            # any error ends the run; it must not stay "running"
            db.rollback()
            run = db.get(ReconcileRun, run_id)
            run.status = "failed"
            run.error_message = str(e)
            run.finished_at = datetime.utcnow()
            db.commit()
            logger.exception("reconcile_run_failed", run_id=str(run_id), error=str(e))
            return
        run = db.get(ReconcileRun, run_id)
        run.status = "finished"
        run.accounts_scanned = summary.accounts_scanned
        run.links_created = summary.links_created
        run.failures = summary.failures
        run.finished_at = datetime.utcnow()
        db.commit()
    finally:
        db.close()
