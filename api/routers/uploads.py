"""
Upload endpoints.

POST /uploads/intent    → validate a prospective upload, return a presigned PUT URL
POST /uploads/finalize  → turn the uploaded object into a queued job (202)

Both handlers are thin: the services in ingest/ own every rule, and any
IngestError they raise is turned into the right status code by
api/errors.py. Nothing here waits on image processing.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_caller, get_db, get_finalize_gateway, get_intent_service
from api.schemas.upload import AcceptedResponse, FinalizeRequest, IntentRequest, IntentResponse
from ingest.caller import Caller
from ingest.finalize import FinalizeGateway
from ingest.intent import UploadIntentService

router = APIRouter(prefix="/uploads", tags=["uploads"])


@router.post("/intent", response_model=IntentResponse)
async def create_upload_intent(
    body: IntentRequest,
    db: AsyncSession = Depends(get_db),
    caller: Caller | None = Depends(get_caller),
    service: UploadIntentService = Depends(get_intent_service),
) -> IntentResponse:
    """
    Reserve a raw-object key and sign a direct-to-storage upload.

    The client PUTs the file bytes to uploadUrl (with the same
    Content-Type) before expiresIn seconds pass, then calls finalize.
    """
    return await service.create_intent(db, body, caller)


@router.post("/finalize", response_model=AcceptedResponse, status_code=202)
async def finalize_upload(
    body: FinalizeRequest,
    db: AsyncSession = Depends(get_db),
    caller: Caller | None = Depends(get_caller),
    gateway: FinalizeGateway = Depends(get_finalize_gateway),
) -> AcceptedResponse:
    """
    Accept an uploaded file for processing.

    Returns as soon as the job is queued. The outcome arrives later as an
    upload_completed or upload_failed notification. Calling this again
    with the same ticket returns the same jobId.
    """
    return await gateway.finalize(db, body, caller)
