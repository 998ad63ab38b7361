"""
ASCOM Alpaca Switch API endpoints.

Every feature of the box is one Alpaca switch; the switch Id is the feature
index.
"""

import logging
from typing import Any, Callable

from fastapi import APIRouter, Depends, Form, Query, Request

from powerbox_alpaca import __version__
from powerbox_alpaca.api.app import DEVICE_NUMBER, get_next_transaction_id
from powerbox_alpaca.api.models import AlpacaResponse, make_response
from powerbox_alpaca.device.powerbox import PowerBox
from powerbox_alpaca.utils.exceptions import NotConnectedError, PowerBoxException


logger = logging.getLogger(__name__)

router = APIRouter(prefix=f"/api/v1/switch/{DEVICE_NUMBER}", tags=["switch"])

INTERFACE_VERSION = 2
DRIVER_INFO = "Power box ASCOM Alpaca Switch driver"


def get_powerbox(request: Request) -> PowerBox:
    """Dependency to get the power box from app.state."""
    powerbox = getattr(request.app.state, 'powerbox', None)
    if powerbox is None:
        raise NotConnectedError("Power box not initialized")
    return powerbox


def get_client_id(ClientTransactionID: int = Query(0)) -> int:
    """Extract client transaction ID from query params."""
    return ClientTransactionID


def get_client_id_form(ClientTransactionID: int = Form(0)) -> int:
    """Extract client transaction ID from form data."""
    return ClientTransactionID


def _call(name: str, client_id: int, fn: Callable[[], Any]) -> AlpacaResponse:
    """Run a driver call and wrap its result or error in the Alpaca envelope."""
    try:
        value = fn()
    except PowerBoxException as e:
        logger.warning(f"{name} failed: {e}")
        return make_response(None, client_id, get_next_transaction_id(), e)
    logger.debug(f"{name} -> {value}")
    return make_response(value, client_id, get_next_transaction_id())


@router.get("/health")
async def health_check():
    """Simple health check endpoint (no dependencies)."""
    return {"status": "ok", "message": "Server is running"}


# Common device members

@router.get("/connected", response_model=AlpacaResponse)
def get_connected(
    client_id: int = Depends(get_client_id),
    powerbox: PowerBox = Depends(get_powerbox)
):
    return _call("GET /connected", client_id, lambda: powerbox.connected)


@router.put("/connected", response_model=AlpacaResponse)
def put_connected(
    Connected: bool = Form(...),
    client_id: int = Depends(get_client_id_form),
    powerbox: PowerBox = Depends(get_powerbox)
):
    """Connect or disconnect the power box."""
    def apply():
        if Connected:
            powerbox.connect()
        else:
            powerbox.disconnect()

    logger.info(f"PUT /connected Connected={Connected}")
    return _call("PUT /connected", client_id, apply)


@router.get("/name", response_model=AlpacaResponse)
def get_name(
    client_id: int = Depends(get_client_id),
    powerbox: PowerBox = Depends(get_powerbox)
):
    description = powerbox.description
    return _call("GET /name", client_id, lambda: description.name if description else "Power Box")


@router.get("/description", response_model=AlpacaResponse)
def get_description(
    client_id: int = Depends(get_client_id),
    powerbox: PowerBox = Depends(get_powerbox)
):
    def describe():
        description = powerbox.description
        if description is None:
            return "Power distribution box"
        return f"{description.name} hw {description.hw_revision} ({description.signature.raw})"

    return _call("GET /description", client_id, describe)


@router.get("/driverinfo", response_model=AlpacaResponse)
def get_driverinfo(client_id: int = Depends(get_client_id)):
    return make_response(DRIVER_INFO, client_id, get_next_transaction_id())


@router.get("/driverversion", response_model=AlpacaResponse)
def get_driverversion(client_id: int = Depends(get_client_id)):
    return make_response(__version__, client_id, get_next_transaction_id())


@router.get("/interfaceversion", response_model=AlpacaResponse)
def get_interfaceversion(client_id: int = Depends(get_client_id)):
    return make_response(INTERFACE_VERSION, client_id, get_next_transaction_id())


@router.get("/supportedactions", response_model=AlpacaResponse)
def get_supportedactions(client_id: int = Depends(get_client_id)):
    return make_response([], client_id, get_next_transaction_id())


# Switch members

@router.get("/maxswitch", response_model=AlpacaResponse)
def get_maxswitch(
    client_id: int = Depends(get_client_id),
    powerbox: PowerBox = Depends(get_powerbox)
):
    """Number of switches (features) on the box."""
    return _call("GET /maxswitch", client_id, powerbox.feature_count)


@router.get("/canwrite", response_model=AlpacaResponse)
def get_canwrite(
    Id: int = Query(...),
    client_id: int = Depends(get_client_id),
    powerbox: PowerBox = Depends(get_powerbox)
):
    return _call(f"GET /canwrite Id={Id}", client_id, lambda: powerbox.feature(Id).writable)


@router.get("/getswitch", response_model=AlpacaResponse)
def get_switch(
    Id: int = Query(...),
    client_id: int = Depends(get_client_id),
    powerbox: PowerBox = Depends(get_powerbox)
):
    return _call(f"GET /getswitch Id={Id}", client_id, lambda: powerbox.read_state(Id))


@router.get("/getswitchvalue", response_model=AlpacaResponse)
def get_switchvalue(
    Id: int = Query(...),
    client_id: int = Depends(get_client_id),
    powerbox: PowerBox = Depends(get_powerbox)
):
    return _call(f"GET /getswitchvalue Id={Id}", client_id, lambda: powerbox.read(Id))


@router.get("/minswitchvalue", response_model=AlpacaResponse)
def get_minswitchvalue(
    Id: int = Query(...),
    client_id: int = Depends(get_client_id),
    powerbox: PowerBox = Depends(get_powerbox)
):
    return _call(f"GET /minswitchvalue Id={Id}", client_id, lambda: powerbox.feature(Id).min_value)


@router.get("/maxswitchvalue", response_model=AlpacaResponse)
def get_maxswitchvalue(
    Id: int = Query(...),
    client_id: int = Depends(get_client_id),
    powerbox: PowerBox = Depends(get_powerbox)
):
    return _call(f"GET /maxswitchvalue Id={Id}", client_id, lambda: powerbox.feature(Id).max_value)


@router.get("/switchstep", response_model=AlpacaResponse)
def get_switchstep(
    Id: int = Query(...),
    client_id: int = Depends(get_client_id),
    powerbox: PowerBox = Depends(get_powerbox)
):
    def step():
        # Sensors report fractional readings, controls move in whole steps
        feature = powerbox.feature(Id)
        return 0.01 if feature.kind.is_sensor else 1.0

    return _call(f"GET /switchstep Id={Id}", client_id, step)


@router.get("/getswitchname", response_model=AlpacaResponse)
def get_switchname(
    Id: int = Query(...),
    client_id: int = Depends(get_client_id),
    powerbox: PowerBox = Depends(get_powerbox)
):
    return _call(f"GET /getswitchname Id={Id}", client_id, lambda: powerbox.feature(Id).label)


@router.get("/getswitchdescription", response_model=AlpacaResponse)
def get_switchdescription(
    Id: int = Query(...),
    client_id: int = Depends(get_client_id),
    powerbox: PowerBox = Depends(get_powerbox)
):
    return _call(f"GET /getswitchdescription Id={Id}", client_id, lambda: powerbox.feature(Id).description)


@router.put("/setswitch", response_model=AlpacaResponse)
def put_setswitch(
    Id: int = Form(...),
    State: bool = Form(...),
    client_id: int = Depends(get_client_id_form),
    powerbox: PowerBox = Depends(get_powerbox)
):
    """Switch a feature fully on (its maximum) or off (its minimum)."""
    def apply():
        feature = powerbox.feature(Id)
        powerbox.write(Id, feature.max_value if State else feature.min_value)

    logger.info(f"PUT /setswitch Id={Id} State={State}")
    return _call(f"PUT /setswitch Id={Id}", client_id, apply)


@router.put("/setswitchvalue", response_model=AlpacaResponse)
def put_setswitchvalue(
    Id: int = Form(...),
    Value: float = Form(...),
    client_id: int = Depends(get_client_id_form),
    powerbox: PowerBox = Depends(get_powerbox)
):
    logger.info(f"PUT /setswitchvalue Id={Id} Value={Value}")
    return _call(f"PUT /setswitchvalue Id={Id}", client_id, lambda: powerbox.write(Id, Value))


@router.put("/setswitchname", response_model=AlpacaResponse)
def put_setswitchname(
    Id: int = Form(...),
    Name: str = Form(...),
    client_id: int = Depends(get_client_id_form),
    powerbox: PowerBox = Depends(get_powerbox)
):
    """Rename a port; the name is stored on the box."""
    logger.info(f"PUT /setswitchname Id={Id} Name={Name!r}")
    return _call(f"PUT /setswitchname Id={Id}", client_id, lambda: powerbox.rename_port(Id, Name))
