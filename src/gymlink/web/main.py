from typing import Optional

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from gymlink.config import settings
from gymlink.db.session import get_db
from gymlink.db.store import MasterGymStore
from gymlink.errors import GymLinkError, NotFoundError, ValidationError
from gymlink.gyms.admin import DEFAULT_LIST_LIMIT, AdminReviewWorkflow, validate_uuid

app = FastAPI(title="Gymlink")

MASTER_GYM_SEARCH_LIMIT = 20


class UnlinkRequest(BaseModel):
    source_gym_id: Optional[str] = Field(default=None, alias="sourceGymId")


@app.exception_handler(GymLinkError)
async def gymlink_error_handler(request: Request, exc: GymLinkError):
    """Render engine errors as {"error": kind, "message": ...}."""
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed query params / bodies get the same structured 400 as engine validation."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        field_name = ".".join(str(part) for part in first.get("loc", ()) if part not in ("query", "body"))
        message = f"{field_name}: {first.get('msg')}" if field_name else str(first.get("msg"))
    else:
        message = "Invalid request"
    return JSONResponse(ValidationError(message).to_dict(), status_code=400)


def _reviewer(x_admin_user: Optional[str]) -> str:
    if x_admin_user and x_admin_user.strip():
        return x_admin_user.strip()
    return settings.default_reviewer


# =============================================================================
# Admin: Pending Matches
# =============================================================================

@app.get("/admin/pending-matches")
async def admin_pending_matches(
    db: Session = Depends(get_db),
    status: str = Query("pending", description="pending, approved or rejected"),
    limit: int = Query(DEFAULT_LIST_LIMIT, ge=1, le=500, description="Max results"),
):
    """List matches with one review status, oldest first."""
    workflow = AdminReviewWorkflow(db)
    return JSONResponse(workflow.list_matches(status=status, limit=limit))


@app.post("/admin/pending-matches/{match_id}/approve")
async def admin_approve_match(
    match_id: str,
    db: Session = Depends(get_db),
    x_admin_user: Optional[str] = Header(default=None),
):
    workflow = AdminReviewWorkflow(db)
    return JSONResponse(workflow.approve(match_id, reviewer=_reviewer(x_admin_user)))


@app.post("/admin/pending-matches/{match_id}/reject")
async def admin_reject_match(
    match_id: str,
    db: Session = Depends(get_db),
    x_admin_user: Optional[str] = Header(default=None),
):
    workflow = AdminReviewWorkflow(db)
    return JSONResponse(workflow.reject(match_id, reviewer=_reviewer(x_admin_user)))


# =============================================================================
# Admin: Master Gyms
# =============================================================================

@app.post("/admin/master-gyms/{master_gym_id}/unlink")
async def admin_unlink_source_gym(
    master_gym_id: str,
    body: UnlinkRequest,
    db: Session = Depends(get_db),
):
    """Detach one source gym from a master gym. The master gym is kept."""
    workflow = AdminReviewWorkflow(db)
    return JSONResponse(workflow.unlink(master_gym_id, body.source_gym_id))


# =============================================================================
# Master Gym Lookup
# =============================================================================

@app.get("/gyms/search")
async def gyms_search(
    db: Session = Depends(get_db),
    q: str = Query(..., min_length=2, description="Name prefix (min 2 characters)"),
):
    """Case-insensitive prefix search over master gym names."""
    masters = MasterGymStore(db).search(q, limit=MASTER_GYM_SEARCH_LIMIT)
    return JSONResponse({
        "gyms": [
            {
                "id": m.id,
                "name": m.canonical_name,
                "city": m.city,
                "country": m.country,
            }
            for m in masters
        ]
    })


@app.get("/gyms/{master_gym_id}")
async def gym_detail(
    master_gym_id: str,
    db: Session = Depends(get_db),
):
    """Master gym with every source gym currently linked to it."""
    master_gym_id = validate_uuid(master_gym_id, "master gym id")
    store = MasterGymStore(db)
    master = store.get(master_gym_id)
    if master is None:
        raise NotFoundError("Master gym")

    return JSONResponse({
        "id": master.id,
        "canonicalName": master.canonical_name,
        "city": master.city,
        "country": master.country,
        "address": master.address,
        "website": master.website,
        "sourceGyms": [
            {
                "id": str(gym.key),
                "org": gym.org,
                "externalId": gym.external_id,
                "name": gym.name,
                "city": gym.city,
            }
            for gym in store.linked_source_gyms(master.id)
        ],
    })


# Only for debugging
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "gymlink.web.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
    )
