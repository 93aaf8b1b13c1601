"""
Records API - the two endpoints the front end talks to.

GET  /api/records  lists the caller's records (filtered, paginated)
POST /api/update   writes availability / comment back to one record
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, ConfigDict, Field

from gateway import QueryParams, RecordGateway, UpstreamError

router = APIRouter(prefix="/api", tags=["records"])

_TRUTHY_FLAGS = {"1", "true", "yes", "on"}


def get_gateway(request: Request) -> RecordGateway:
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise UpstreamError("Gateway is not initialized")
    return gateway


def _flag(value: Optional[str]) -> bool:
    return str(value or "").strip().lower() in _TRUTHY_FLAGS


class UpdateRequest(BaseModel):
    # Unknown keys are ignored so the front end can send more than we write.
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    record_id: str = Field(default="", alias="recordId")
    external_id: str = Field(default="", alias="externalId")
    availability: Optional[str] = None
    comment: Optional[str] = None


@router.get("/records")
async def list_records(
    external_id: str = Query("", alias="externalId", description="Front-end member id of the caller"),
    cursor: Optional[str] = Query(None, description="Continuation cursor from a previous page"),
    q: str = Query("", description="Free text searched in title and summary"),
    sort: str = Query("", description="title_asc | title_desc | recency"),
    status: str = Query("", description="Status name, or 'all'"),
    availability: str = Query("", description="yes | no | other | all"),
    include_hidden: Optional[str] = Query(None, alias="includeHidden"),
    debug: Optional[str] = Query(None),
    gateway: RecordGateway = Depends(get_gateway),
):
    """
    List the records owned by the caller.

    Response: {results, nextCursor, hasMore, debug?}
    """
    params = QueryParams(
        q=q,
        status=status,
        availability=availability,
        include_hidden=_flag(include_hidden),
        sort=sort,
        cursor=cursor or None,
    )
    return await gateway.list_records(external_id, params, debug=_flag(debug))


@router.post("/update")
async def update_record(
    body: UpdateRequest,
    gateway: RecordGateway = Depends(get_gateway),
):
    """Write the caller's availability and comment to one of their records."""
    patch = body.model_dump(include={"availability", "comment"}, exclude_none=True)
    return await gateway.apply_update(body.record_id, body.external_id, patch)
