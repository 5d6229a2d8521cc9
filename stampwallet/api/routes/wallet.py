import logging
from email.utils import formatdate

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Response

from stampwallet.api.deps import get_registry
from stampwallet.core.security import verify_auth_token
from stampwallet.domain.errors import AuthenticationError
from stampwallet.domain.schemas import DeviceRegistrationRequest, SerialNumbersResponse, WalletLogRequest
from stampwallet.services.registry import DeviceUpdateRegistry

logger = logging.getLogger(__name__)

router = APIRouter()


def _require_token(authorization: str | None) -> str:
    auth_token = verify_auth_token(authorization)
    if not auth_token:
        raise HTTPException(status_code=401, detail="Authorization required")
    return auth_token


@router.post("/v1/devices/{device_library_id}/registrations/{pass_type_id}/{serial_number}")
def register_device_endpoint(
    device_library_id: str,
    pass_type_id: str,
    serial_number: str,
    body: DeviceRegistrationRequest,
    authorization: str | None = Header(None),
    registry: DeviceUpdateRegistry = Depends(get_registry),
):
    """Register a device for push notifications."""
    auth_token = _require_token(authorization)
    try:
        created = registry.register_device(device_library_id, serial_number, auth_token, body.pushToken)
    except AuthenticationError:
        raise HTTPException(status_code=401, detail="Invalid authentication")

    return Response(status_code=201 if created else 200)


@router.delete("/v1/devices/{device_library_id}/registrations/{pass_type_id}/{serial_number}")
def unregister_device_endpoint(
    device_library_id: str,
    pass_type_id: str,
    serial_number: str,
    authorization: str | None = Header(None),
    registry: DeviceUpdateRegistry = Depends(get_registry),
):
    """Unregister a device from push notifications."""
    auth_token = _require_token(authorization)
    try:
        registry.unregister_device(device_library_id, serial_number, auth_token)
    except AuthenticationError:
        raise HTTPException(status_code=401, detail="Invalid authentication")

    return Response(status_code=200)


@router.get("/v1/devices/{device_library_id}/registrations/{pass_type_id}", response_model=SerialNumbersResponse)
def get_serial_numbers(
    device_library_id: str,
    pass_type_id: str,
    passesUpdatedSince: str | None = None,  # noqa: N803 - Apple Wallet API requirement
    registry: DeviceUpdateRegistry = Depends(get_registry),
):
    """Get list of passes registered to this device that have been updated."""
    updated = registry.passes_updated_since(device_library_id, passesUpdatedSince)
    if updated is None:
        return Response(status_code=204)

    return SerialNumbersResponse(
        serialNumbers=updated.serial_numbers,
        lastUpdated=str(updated.last_updated),
    )


@router.get("/v1/passes/{pass_type_id}/{serial_number}")
def get_latest_pass(
    pass_type_id: str,
    serial_number: str,
    authorization: str | None = Header(None),
    if_none_match: str | None = Header(None, alias="If-None-Match"),
    if_modified_since: str | None = Header(None, alias="If-Modified-Since"),
    registry: DeviceUpdateRegistry = Depends(get_registry),
):
    """Download the latest version of a pass."""
    auth_token = _require_token(authorization)
    try:
        package = registry.latest_pass(serial_number, auth_token, if_none_match, if_modified_since)
    except AuthenticationError:
        raise HTTPException(status_code=401, detail="Invalid authentication")

    if package is None:
        return Response(status_code=304)

    headers = {"ETag": package.etag}
    if package.last_modified:
        headers["Last-Modified"] = formatdate(package.last_modified.timestamp(), usegmt=True)

    return Response(
        content=package.data,
        media_type="application/vnd.apple.pkpass",
        headers=headers,
    )


@router.post("/v1/log")
def receive_logs(body: WalletLogRequest = Body(...)):
    """Receive error logs from Apple Wallet."""
    for log in body.logs:
        logger.warning(f"Wallet log: {log}")
    return Response(status_code=200)
