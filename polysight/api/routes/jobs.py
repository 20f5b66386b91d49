import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import admin_key_auth
from ...cache import get_markets_cache
from ...db import get_db
from ...errors import SYNC_FAILED, SYNC_LOCKED, PolysightError, error_response
from ...integrations.rq_queue import q
from ...jobs.run import job_sync_wrapper
from ...jobs.tasks import run_sync, sync_targets

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/jobs/sync")
def sync_job(category: str | None = None, _=Depends(admin_key_auth)):
    try:
        sync_targets(category)
    except PolysightError as exc:
        return error_response(exc.code, exc.message, exc.status_code, exc.details)
    job = q.enqueue(job_sync_wrapper, category=category)
    return {"job_id": job.id}


@router.post("/sync-markets")
async def sync_markets(
    category: str | None = None,
    sync_categories: bool = True,
    db: Session = Depends(get_db),
    _=Depends(admin_key_auth),
):
    try:
        result = await run_sync(db, category=category, sync_categories=sync_categories)
    except PolysightError as exc:
        return error_response(exc.code, exc.message, exc.status_code, exc.details)
    except Exception:
        logger.exception("sync_markets_failed")
        return error_response(SYNC_FAILED, "Market sync failed", 500)

    if result.get("reason") == "sync_locked":
        return error_response(SYNC_LOCKED, "A sync is already running", 409)
    if not result.get("ok"):
        return error_response(SYNC_FAILED, "Market sync failed", 502, result.get("categories"))
    get_markets_cache().clear()
    return result
