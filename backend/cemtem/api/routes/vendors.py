"""Vendors: listing and soft deactivation (vendors are never deleted)."""
from typing import List

from fastapi import APIRouter, Depends

from cemtem.api.deps import get_storage
from cemtem.core.exceptions import BusinessError, StorageError
from cemtem.schemas.records import VendorRecord
from cemtem.services.storage import SqlStorage

router = APIRouter()


@router.get("", response_model=List[VendorRecord])
async def list_vendors(storage: SqlStorage = Depends(get_storage)):
    try:
        return await storage.list_vendors()
    except StorageError as e:
        raise BusinessError.server_error(e)


@router.post("/{vendor_id}/deactivate", response_model=VendorRecord)
async def deactivate_vendor(vendor_id: str, storage: SqlStorage = Depends(get_storage)):
    """Deactivated vendors stop receiving inquiries."""
    try:
        vendor = await storage.update_vendor(vendor_id, {"is_active": False})
    except StorageError as e:
        raise BusinessError.server_error(e)
    if not vendor:
        raise BusinessError.not_found("Vendor", vendor_id)
    return vendor
