"""API endpoints for one-time survey links.

POST /surveys/{survey_id}/share                 : issue a link (optionally with prefill data)
GET  /public/surveys/{survey_id}?token=...      : validate a link for display
POST /public/surveys/{survey_id}/responses      : submit once through a link
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from core.logging import get_logger
from database import get_db
from models.one_link import LinkSubmission
from services.onelink import LinkRecord, LinkResult, OneLinkService
from web.deps import get_link_service

logger = get_logger(__name__)

router = APIRouter(tags=["OneLink"])


# ── Request / Response schemas ──────────────────────────────────────────────

class CreateShareLinkRequest(BaseModel):
    prefill_data: Dict[str, Any] = Field(default_factory=dict, description="prefill_key -> value")
    expires_at: Optional[datetime] = Field(None, description="Optional absolute expiration time")


class ShareLinkResponse(BaseModel):
    token: str
    url: str
    expires_at: datetime


class LinkPreviewResponse(BaseModel):
    survey_id: int
    prefill_data: Dict[str, Any]
    expires_at: datetime


class AnswerPayload(BaseModel):
    question_id: int
    value: Any = None


class SubmitResponseRequest(BaseModel):
    token: str = Field(..., min_length=1)
    answers: List[AnswerPayload] = Field(default_factory=list)


class SubmitResponseResponse(BaseModel):
    id: int
    survey_id: int
    submitted_at: datetime
    message: str = "Submitted"


def _raise_link_error(result: LinkResult) -> NoReturn:
    error = result.error
    raise HTTPException(status_code=error.kind.http_status, detail=error.to_detail())


# ── Endpoints ────────────────────────────────────────────────────────────────

@router.post(
    "/surveys/{survey_id}/share",
    response_model=ShareLinkResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Issue a one-time link",
)
def create_share_link(
    survey_id: int,
    payload: CreateShareLinkRequest,
    service: OneLinkService = Depends(get_link_service),
):
    result = service.issue_link(survey_id, payload.prefill_data, payload.expires_at)
    if not result.ok:
        _raise_link_error(result)
    issued = result.value
    return ShareLinkResponse(token=issued.token, url=issued.url, expires_at=issued.expires_at)


@router.get(
    "/public/surveys/{survey_id}",
    response_model=LinkPreviewResponse,
    summary="Validate a one-time link for display",
)
def preview_share_link(
    survey_id: int,
    token: Optional[str] = Query(None),
    service: OneLinkService = Depends(get_link_service),
):
    if not token:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "onelink.missing_token", "message": "The token query parameter is required."},
        )
    result = service.preview_link(token, resource_id=survey_id)
    if not result.ok:
        _raise_link_error(result)
    preview = result.value
    return LinkPreviewResponse(
        survey_id=preview.resource_id,
        prefill_data=dict(preview.prefill),
        expires_at=preview.expires_at,
    )


@router.post(
    "/public/surveys/{survey_id}/responses",
    response_model=SubmitResponseResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a response through a one-time link",
)
def submit_response(
    survey_id: int,
    payload: SubmitResponseRequest,
    request: Request,
    db: Session = Depends(get_db),
    service: OneLinkService = Depends(get_link_service),
):
    client_host = request.client.host if request.client else None
    user_agent = request.headers.get("user-agent")

    def record_submission(record: LinkRecord) -> LinkSubmission:
        submission = LinkSubmission(
            one_link_id=record.id,
            survey_id=record.resource_id,
            answers=[answer.model_dump() for answer in payload.answers],
            ip_address=client_host,
            user_agent=(user_agent or "")[:512] or None,
        )
        db.add(submission)
        db.commit()
        db.refresh(submission)
        return submission

    result = service.consume_link(payload.token, record_submission, resource_id=survey_id)
    if not result.ok:
        _raise_link_error(result)
    submission = result.value
    logger.info("Recorded submission id=%s for survey=%s", submission.id, submission.survey_id)
    return SubmitResponseResponse(
        id=submission.id,
        survey_id=submission.survey_id,
        submitted_at=submission.submitted_at,
    )


__all__ = ["router"]
