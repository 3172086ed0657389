from typing import Callable

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from ..auth.security import require_roles
from ..db import get_db, get_session_factory
from ..models.models import Account, ReconcileRun, ROLE_SUPERADMIN
from ..schemas.resources import ReconcileRunResponse
from ..services.errors import NotFoundError
from ..services.identity import execute_reconcile_run, start_reconcile_run
from ..services.lookup import parse_id


router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/reconcile", response_model=ReconcileRunResponse, status_code=202)
def trigger_reconcile(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    me: Account = Depends(require_roles(ROLE_SUPERADMIN)),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
):
    run = start_reconcile_run(db, requested_by=me)
    background_tasks.add_task(execute_reconcile_run, run.id, session_factory)
    return run


@router.get("/reconcile/{run_id}", response_model=ReconcileRunResponse)
def get_reconcile_run(
    run_id: str,
    db: Session = Depends(get_db),
    me: Account = Depends(require_roles(ROLE_SUPERADMIN)),
):
    run = db.get(ReconcileRun, parse_id(run_id, "Reconcile run"))
    if run is None:
        raise NotFoundError("Reconcile run not found")
    return run
