# rsvp_app/routers/responses.py

from fastapi import APIRouter, Depends, Query, Response, status
from typing import Dict, Any, Optional
from ..dependencies.permissions import (
    get_current_user,
    get_optional_user,
    get_response_service,
)
from ..models.response import ResponseRecord
from ..models.user import User
from ..schemas.response import ResponseRecordOut, ResponseSubmit, RosterEntry
from ..services.actors import GuestActor, actor_from_user
from ..services.response_service import ResponseService
from ..utils.constants import ResponseMessages
from ..utils.router_helpers import handle_service_errors, RouterResponse

router = APIRouter(tags=["responses"])


def _serialize(record: ResponseRecord) -> Dict[str, Any]:
    return ResponseRecordOut.model_validate(record).model_dump(mode="json")


@router.post("/{slug}/responses", response_model=Dict[str, Any])
@handle_service_errors
async def submit_response(
    slug: str,
    payload: ResponseSubmit,
    response: Response,
    current_user: Optional[User] = Depends(get_optional_user),
    service: ResponseService = Depends(get_response_service),
):
    """RSVP to an event as the signed-in user, or as a guest without a session"""
    event = service.get_event_by_slug(slug)

    if current_user is not None:
        actor = actor_from_user(current_user)
    else:
        actor = GuestActor(
            name=payload.guest_name or "",
            email=payload.guest_email or "",
            phone=payload.guest_phone,
        )

    result = service.submit_response(
        event,
        actor,
        payload.response_type,
        guest_count=payload.guest_count,
        comments=payload.comments,
    )

    data = {"response": _serialize(result.record), "counts": result.counts.to_dict()}

    if result.created:
        response.status_code = status.HTTP_201_CREATED
        return RouterResponse.created(data=data, message=ResponseMessages.RESPONSE_RECORDED)
    return RouterResponse.updated(data=data, message=ResponseMessages.RESPONSE_UPDATED)


@router.get("/{slug}/responses/counts", response_model=Dict[str, Any])
@handle_service_errors
async def get_response_counts(
    slug: str,
    service: ResponseService = Depends(get_response_service),
):
    """Aggregate yup/nope/maybe counts"""
    event = service.get_event_by_slug(slug)
    counts = service.get_aggregate_counts(event)

    return RouterResponse.success(data={"counts": counts.to_dict()})


@router.get("/{slug}/responses/me", response_model=Dict[str, Any])
@handle_service_errors
async def get_my_response(
    slug: str,
    current_user: User = Depends(get_current_user),
    service: ResponseService = Depends(get_response_service),
):
    event = service.get_event_by_slug(slug)
    record = service.get_user_response(event, actor_from_user(current_user))

    return RouterResponse.success(data={"response": _serialize(record)})


@router.get("/{slug}/responses", response_model=Dict[str, Any])
@handle_service_errors
async def get_roster(
    slug: str,
    current_user: Optional[User] = Depends(get_optional_user),
    service: ResponseService = Depends(get_response_service),
):
    """Event roster, subject to the event's visibility settings"""
    event = service.get_event_by_slug(slug)
    viewer = actor_from_user(current_user) if current_user else None

    records = service.get_roster(event, viewer)
    roster = [
        RosterEntry.model_validate(record).model_dump(mode="json") for record in records
    ]

    return RouterResponse.success(
        data={
            "responses": roster,
            "counts": service.get_aggregate_counts(event).to_dict(),
        }
    )


@router.get("/{slug}/guest-response", response_model=Dict[str, Any])
@handle_service_errors
async def get_guest_response(
    slug: str,
    token: str = Query(..., description="Response token returned on submission"),
    service: ResponseService = Depends(get_response_service),
):
    """Fetch a guest's own response for editing"""
    event = service.get_event_by_slug(slug)
    record = service.get_guest_response(event, token)

    return RouterResponse.success(
        data={"response": _serialize(record), "event": {"title": event.title}}
    )
