"""Inquiries: read-only audit trail with the price responses received."""
from typing import List

from fastapi import APIRouter, Depends, Query

from cemtem.api.deps import get_storage
from cemtem.core.exceptions import BusinessError, StorageError
from cemtem.schemas.records import InquiryDetail, InquiryRecord, PriceResponseRecord
from cemtem.services.identifiers import normalize_inquiry_id
from cemtem.services.storage import SqlStorage

router = APIRouter()


@router.get("", response_model=List[InquiryRecord])
async def list_inquiries(
    limit: int = Query(50, ge=1, le=500),
    storage: SqlStorage = Depends(get_storage),
):
    """Most recent first."""
    try:
        return await storage.list_inquiries(limit)
    except StorageError as e:
        raise BusinessError.server_error(e)


@router.get("/{inquiry_id}", response_model=InquiryDetail)
async def get_inquiry(inquiry_id: str, storage: SqlStorage = Depends(get_storage)):
    normalized = normalize_inquiry_id(inquiry_id)
    if not normalized.startswith("INQ-"):
        raise BusinessError.bad_request("Inquiry IDs look like INQ-<number>")

    try:
        inquiry = await storage.get_inquiry_by_id(normalized)
        if not inquiry:
            raise BusinessError.not_found("Inquiry", inquiry_id)
        responses = await storage.get_price_responses_by_inquiry(inquiry.inquiry_id)
    except StorageError as e:
        raise BusinessError.server_error(e)

    detail = InquiryDetail.model_validate(inquiry)
    detail.responses = [PriceResponseRecord.model_validate(r) for r in responses]
    return detail
