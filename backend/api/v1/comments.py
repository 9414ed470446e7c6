"""Comment endpoints."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request, Response, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_db, get_optional_claims, get_reader_claims, require_owner
from core import SessionClaims
from models import Comment, CommentState
from services.client_ip import resolve_client_ip
from services.comments import (
    CommentDraft,
    CommentNode,
    ModerationDispatcher,
    RequestContext,
    create_comment,
    delete_comment,
    get_moderation_dispatcher,
    list_comments,
    set_pin,
    set_whisper,
    update_comment_text,
    viewer_from_claims,
)
from services.geolocation import LocationLookup, get_location_lookup
from services.turnstile import TurnstileVerifier, get_turnstile_verifier

router = APIRouter(prefix="/comments", tags=["comments"])

MAX_COMMENT_LENGTH = 5000


class CommentCreateRequest(BaseModel):
    ref_id: str = Field(min_length=1, max_length=64)
    ref_type: str = Field(min_length=1, max_length=16)
    text: str = Field(min_length=1, max_length=MAX_COMMENT_LENGTH)
    author: str | None = Field(default=None, max_length=255)
    mail: EmailStr | None = None
    url: str | None = Field(default=None, max_length=1024)
    parent_id: str | None = Field(default=None, max_length=64)
    turnstile_token: str | None = Field(default=None, max_length=4096)


class CommentUpdateRequest(BaseModel):
    text: str = Field(min_length=1, max_length=MAX_COMMENT_LENGTH)


class CommentResponse(BaseModel):
    id: str
    ref_id: str
    ref_type: str
    author: str
    text: str
    state: int
    parent_id: str | None = None
    key: str
    comments_index: int
    pin: bool
    is_whispers: bool
    source: str | None = None
    avatar: str | None = None
    url: str | None = None
    location: str | None = None
    created_at: datetime
    is_admin: bool = False
    children: list[CommentResponse] = Field(default_factory=list)

    @classmethod
    def from_comment(cls, comment: Comment, *, is_admin: bool = False) -> CommentResponse:
        return cls(
            id=comment.id,
            ref_id=comment.ref_id,
            ref_type=comment.ref_type,
            author=comment.author,
            text=comment.text,
            state=comment.state,
            parent_id=comment.parent_id,
            key=comment.key,
            comments_index=comment.comments_index,
            pin=comment.pin,
            is_whispers=comment.is_whispers,
            source=comment.source,
            avatar=comment.avatar,
            url=comment.url,
            location=comment.location,
            created_at=comment.created_at,
            is_admin=is_admin,
        )

    @classmethod
    def from_node(cls, node: CommentNode) -> CommentResponse:
        response = cls.from_comment(node.comment, is_admin=node.is_admin)
        response.avatar = node.avatar
        response.children = [cls.from_node(child) for child in node.children]
        return response


class CommentListResponse(BaseModel):
    count: int
    data: list[CommentResponse]


class CommentCreatedResponse(BaseModel):
    message: str
    data: CommentResponse


@router.get("", response_model=CommentListResponse)
async def read_comments(
    ref_id: str = Query(min_length=1, max_length=64),
    ref_type: str = Query(min_length=1, max_length=16),
    claims: SessionClaims | None = Depends(get_optional_claims),
    session: AsyncSession = Depends(get_db),
) -> CommentListResponse:
    tree, count = await list_comments(
        session, ref_id=ref_id, ref_type=ref_type, viewer=viewer_from_claims(claims)
    )
    return CommentListResponse(count=count, data=[CommentResponse.from_node(n) for n in tree])


@router.post("", response_model=CommentCreatedResponse, status_code=status.HTTP_201_CREATED)
async def post_comment(
    payload: CommentCreateRequest,
    request: Request,
    claims: SessionClaims | None = Depends(get_optional_claims),
    session: AsyncSession = Depends(get_db),
    dispatcher: ModerationDispatcher = Depends(get_moderation_dispatcher),
    verifier: TurnstileVerifier = Depends(get_turnstile_verifier),
    location_lookup: LocationLookup = Depends(get_location_lookup),
) -> CommentCreatedResponse:
    comment = await create_comment(
        session,
        CommentDraft(**payload.model_dump()),
        claims=claims,
        context=RequestContext(
            ip=resolve_client_ip(request),
            agent=request.headers.get("user-agent"),
        ),
        dispatcher=dispatcher,
        verifier=verifier,
        location_lookup=location_lookup,
    )
    message = (
        "Comment submitted and pending review"
        if comment.state == CommentState.PENDING
        else "Comment created"
    )
    return CommentCreatedResponse(message=message, data=CommentResponse.from_comment(comment))


@router.patch("/{comment_id}", response_model=CommentResponse)
async def edit_comment(
    comment_id: str,
    payload: CommentUpdateRequest,
    claims: SessionClaims = Depends(get_reader_claims),
    session: AsyncSession = Depends(get_db),
) -> CommentResponse:
    comment = await update_comment_text(session, comment_id, payload.text, claims=claims)
    return CommentResponse.from_comment(comment)


@router.delete("/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_comment(
    comment_id: str,
    claims: SessionClaims = Depends(get_reader_claims),
    session: AsyncSession = Depends(get_db),
) -> Response:
    await delete_comment(session, comment_id, claims=claims)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{comment_id}/hide",
    response_model=CommentResponse,
    dependencies=[Depends(require_owner)],
)
async def hide_comment(comment_id: str, session: AsyncSession = Depends(get_db)) -> CommentResponse:
    return CommentResponse.from_comment(await set_whisper(session, comment_id, True))


@router.post(
    "/{comment_id}/unhide",
    response_model=CommentResponse,
    dependencies=[Depends(require_owner)],
)
async def unhide_comment(
    comment_id: str, session: AsyncSession = Depends(get_db)
) -> CommentResponse:
    return CommentResponse.from_comment(await set_whisper(session, comment_id, False))


@router.post(
    "/{comment_id}/pin",
    response_model=CommentResponse,
    dependencies=[Depends(require_owner)],
)
async def pin_comment(comment_id: str, session: AsyncSession = Depends(get_db)) -> CommentResponse:
    return CommentResponse.from_comment(await set_pin(session, comment_id, True))


@router.post(
    "/{comment_id}/unpin",
    response_model=CommentResponse,
    dependencies=[Depends(require_owner)],
)
async def unpin_comment(
    comment_id: str, session: AsyncSession = Depends(get_db)
) -> CommentResponse:
    return CommentResponse.from_comment(await set_pin(session, comment_id, False))
