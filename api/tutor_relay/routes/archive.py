"""Admin export of the training-data archive."""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from tutor_relay.core.exceptions import ArchiveUnavailableError, ServiceUnavailableError
from tutor_relay.core.security import verify_admin_access
from tutor_relay.models.question import ArchivalError

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin/archive",
    tags=["Admin Archive"],
    dependencies=[Depends(verify_admin_access)],
)


def get_archive(request: Request):
    archive = getattr(request.app.state, "archive", None)
    if archive is None:
        raise ServiceUnavailableError("Archive")
    return archive


@router.get("/records")
async def list_archived_records(archive=Depends(get_archive)) -> Dict[str, Any]:
    """Return every archived question/answer row."""
    try:
        records = await archive.list_records()
    except ArchivalError as e:
        raise ArchiveUnavailableError(str(e)) from e
    return {"records": records, "count": len(records)}
