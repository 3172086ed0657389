"""
Audit trail for ledger and interest changes.

Rows are only ever inserted. Each carries a SHA-256 hash over its canonical
JSON plus the JWT secret, so edits made directly in the database show up as a
hash mismatch.
"""
import hashlib
import json
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import Account, AuditLog


def _integrity_hash(payload: Dict[str, Any], secret: str) -> str:
    canonical = json.dumps(
        {k: v for k, v in payload.items() if v is not None},
        sort_keys=True,
        default=str,
    )
    return hashlib.sha256(f"{canonical}:{secret}".encode()).hexdigest()


def create_audit_log(
    db: Session,
    entity_type: str,
    entity_id: Any,
    action: str,
    actor: Optional[Account] = None,
    source: str = "api",
    changes_json: Optional[Dict] = None,
    context: Optional[Dict] = None,
    integrity_secret: Optional[str] = None,
    commit: bool = True,
) -> AuditLog:
    """
    Record one change to an interest, reply, berth or land storage slot.

    `actor` is None for background jobs and scripts, which are logged with the
    role "system". Pass commit=False when the entry must land in the same
    commit as the change it describes.
    """
    now = datetime.utcnow()
    secret = settings.jwt_secret if integrity_secret is None else integrity_secret

    entry = AuditLog(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        actor_id=actor.id if actor is not None else None,
        actor_role=actor.role if actor is not None else "system",
        source=source,
        changes_json=changes_json,
        timestamp_utc=now,
        context=context,
    )
    if secret:
        entry.integrity_hash = _integrity_hash(
            {
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action,
                "actor_id": str(entry.actor_id) if entry.actor_id else None,
                "actor_role": entry.actor_role,
                "source": source,
                "timestamp_utc": now.isoformat(),
                "changes": changes_json,
                "context": context,
            },
            secret,
        )

    db.add(entry)
    if commit:
        db.commit()
        db.refresh(entry)
    return entry


def compute_diff(before: Dict, after: Dict) -> Dict:
    """Fields whose value differs, as {field: {"before": ..., "after": ...}}."""
    return {
        key: {"before": before.get(key), "after": after.get(key)}
        for key in set(before) | set(after)
        if before.get(key) != after.get(key)
    }
