"""
Web API endpoints for controlling the simulated power box.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from powerbox_alpaca.simulator.mock_powerbox import MockPowerBox


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/simulator", tags=["simulator"])


def get_simulator(request: Request) -> MockPowerBox:
    """Get simulator from app.state."""
    simulator = getattr(request.app.state, 'simulator', None)
    if simulator is None:
        raise HTTPException(status_code=503, detail="Simulator not available")
    return simulator


class ReadingsRequest(BaseModel):
    """New sensor readings; omitted fields keep their value."""
    input_volts: Optional[float] = Field(None, ge=0, le=50)
    port_amps: Optional[float] = Field(None, ge=0, le=50)
    ambient_temperature: Optional[float] = Field(None, ge=-100, le=200)
    ambient_humidity: Optional[float] = Field(None, ge=0, le=100)
    probe_temperatures: Optional[List[float]] = None


class FaultRequest(BaseModel):
    """Fault injection settings."""
    inject_timeout: Optional[bool] = None
    response_latency_ms: Optional[int] = Field(None, ge=0, le=5000)


@router.get("/status")
def get_status(request: Request):
    """Current simulated hardware state."""
    return get_simulator(request).state()


@router.put("/readings")
def put_readings(request: Request, readings: ReadingsRequest):
    simulator = get_simulator(request)
    changes = readings.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No readings given")

    simulator.set_readings(**changes)
    logger.info(f"[Web API] Simulated readings changed: {changes}")
    return simulator.state()


@router.put("/faults")
def put_faults(request: Request, faults: FaultRequest):
    """Turn timeout injection or response latency on or off."""
    simulator = get_simulator(request)
    if faults.inject_timeout is not None:
        simulator.config.inject_timeout = faults.inject_timeout
    if faults.response_latency_ms is not None:
        simulator.config.response_latency_ms = faults.response_latency_ms

    logger.info(
        f"[Web API] Simulator faults: timeout={simulator.config.inject_timeout}, "
        f"latency={simulator.config.response_latency_ms}ms"
    )
    return {
        "inject_timeout": simulator.config.inject_timeout,
        "response_latency_ms": simulator.config.response_latency_ms,
    }
