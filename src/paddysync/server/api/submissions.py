"""Survey submission API route.

The upstream auth layer verifies the surveyor and forwards the identity
in ``X-Auth-*`` headers. The form is multipart: one text field per
survey answer plus any number of ``photos`` file parts.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import ValidationError

from paddysync.core.errors import PaddySyncError
from paddysync.server.api.deps import HTTP_422_UNPROCESSABLE, get_service, raise_http_error
from paddysync.server.schemas import SubmissionResponse, submit_to_response
from paddysync.server.submissions import Photo, SurveyorIdentity, SurveySubmission
from paddysync.service import Service

router = APIRouter(prefix="/api/submissions", tags=["submissions"])

PHOTO_FIELD = "photos"


def get_identity(
    x_auth_provider: str = Header("telegram"),
    x_auth_user_id: str | None = Header(None),
    x_auth_username: str | None = Header(None),
    x_auth_first_name: str | None = Header(None),
    x_auth_last_name: str | None = Header(None),
) -> SurveyorIdentity:
    """Build the surveyor identity from gateway headers."""
    if not x_auth_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing surveyor identity",
        )
    return SurveyorIdentity(
        provider=x_auth_provider,
        user_id=x_auth_user_id,
        username=x_auth_username,
        first_name=x_auth_first_name,
        last_name=x_auth_last_name,
    )


@router.post("", response_model=SubmissionResponse, status_code=status.HTTP_202_ACCEPTED)
async def submit_survey(
    request: Request,
    identity: SurveyorIdentity = Depends(get_identity),
    service: Service = Depends(get_service),
) -> SubmissionResponse:
    """Accept a survey; the record is saved in the background."""
    form = await request.form()
    fields = {
        key: value
        for key, value in form.multi_items()
        if key != PHOTO_FIELD and isinstance(value, str)
    }
    try:
        submission = SurveySubmission.model_validate(fields)
    except ValidationError as e:
        raise HTTPException(
            status_code=HTTP_422_UNPROCESSABLE,
            detail=e.errors(include_url=False, include_context=False),
        ) from e

    photos = []
    for upload in form.getlist(PHOTO_FIELD):
        if isinstance(upload, str):
            continue
        photos.append(
            Photo(
                filename=upload.filename or "photo.jpg",
                content=await upload.read(),
                content_type=upload.content_type or "image/jpeg",
            )
        )

    try:
        result = await service.enqueue(identity, submission, photos)
    except PaddySyncError as e:
        raise_http_error(e)
    return submit_to_response(result)
