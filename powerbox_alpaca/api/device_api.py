"""
Device API endpoints beyond the Alpaca surface.

Feature snapshot, forced refresh, port renaming and the protocol log, for
dashboards and debugging.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, Request

from powerbox_alpaca.api.models import FeatureModel, RenameRequest
from powerbox_alpaca.device.powerbox import PowerBox
from powerbox_alpaca.protocol.logger import get_protocol_logger
from powerbox_alpaca.utils.exceptions import (
    DriverError,
    InvalidValueError,
    NotConnectedError,
    PowerBoxException,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/powerbox", tags=["powerbox"])


def get_powerbox(request: Request) -> PowerBox:
    """Get the power box from app.state."""
    powerbox = getattr(request.app.state, 'powerbox', None)
    if powerbox is None:
        raise HTTPException(status_code=503, detail="Power box not available")
    return powerbox


def _http_error(e: PowerBoxException) -> HTTPException:
    if isinstance(e, NotConnectedError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, InvalidValueError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, DriverError):
        return HTTPException(status_code=502, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


@router.get("/info")
def get_info(request: Request):
    """Identity, connection and polling status of the box."""
    powerbox = get_powerbox(request)
    poller = getattr(request.app.state, 'poller', None)

    info = {
        "connected": powerbox.connected,
        "port": powerbox.connection.transport.port_name,
        "protocol_version": powerbox.connection.protocol_version,
        "device_name": None,
        "hw_revision": None,
        "signature": None,
        "feature_count": 0,
        "input_power_watts": None,
        "polling": poller.running if poller else False,
        "poll_failures": poller.consecutive_failures if poller else 0,
    }

    description = powerbox.description
    if powerbox.connected and description is not None:
        try:
            info.update(
                device_name=description.name,
                hw_revision=description.hw_revision,
                signature=description.signature.raw,
                feature_count=powerbox.feature_count(),
                input_power_watts=round(powerbox.input_power(), 2),
            )
        except NotConnectedError:
            info["connected"] = False

    return info


@router.get("/features", response_model=List[FeatureModel])
def get_features(request: Request):
    """Snapshot of every feature, in table order."""
    powerbox = get_powerbox(request)
    try:
        features = powerbox.describe()
    except PowerBoxException as e:
        raise _http_error(e)
    return [FeatureModel.from_feature(i, f) for i, f in enumerate(features)]


@router.post("/refresh", response_model=List[FeatureModel])
def post_refresh(request: Request):
    """Pull a status snapshot now and return the updated features."""
    powerbox = get_powerbox(request)
    try:
        powerbox.refresh()
        features = powerbox.describe()
    except PowerBoxException as e:
        logger.warning(f"Forced refresh failed: {e}")
        raise _http_error(e)
    return [FeatureModel.from_feature(i, f) for i, f in enumerate(features)]


@router.post("/reload")
def post_reload(request: Request):
    """Read the board description again and rebuild the feature table."""
    powerbox = get_powerbox(request)
    try:
        powerbox.reload_description()
        count = powerbox.feature_count()
    except PowerBoxException as e:
        raise _http_error(e)
    return {"status": "ok", "feature_count": count}


@router.put("/features/{index}/name")
def put_feature_name(request: Request, index: int, body: RenameRequest):
    """Rename the port behind a port feature."""
    powerbox = get_powerbox(request)
    try:
        powerbox.rename_port(index, body.name)
        label = powerbox.feature(index).label
    except PowerBoxException as e:
        raise _http_error(e)
    logger.info(f"[Web API] Feature {index} renamed to {label!r}")
    return {"status": "ok", "index": index, "label": label}


@router.get("/protocol-log")
def get_protocol_log(limit: int = Query(100, ge=1, le=1000)):
    """Recent TX/RX lines and counters."""
    protocol_logger = get_protocol_logger()
    return {
        "messages": protocol_logger.get_messages(limit),
        "stats": protocol_logger.get_stats(),
    }


@router.delete("/protocol-log")
def clear_protocol_log():
    get_protocol_logger().clear()
    return {"status": "ok"}


@router.put("/protocol-log/enabled")
def set_protocol_log_enabled(enabled: Optional[bool] = Query(None)):
    """Turn protocol capture on or off; without a value, report the setting."""
    protocol_logger = get_protocol_logger()
    if enabled is not None:
        protocol_logger.enabled = enabled
    return {"enabled": protocol_logger.enabled}
