"""
FastAPI application factory.
"""

import html
import logging
import itertools
import threading
import time
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, HTMLResponse

from powerbox_alpaca import __version__
from powerbox_alpaca.config.models import AppConfig
from powerbox_alpaca.api.models import make_response
from powerbox_alpaca.device.powerbox import PowerBox
from powerbox_alpaca.protocol.port_scanner import list_available_ports, scan_for_powerbox


logger = logging.getLogger(__name__)

DEVICE_TYPE = "Switch"
DEVICE_NUMBER = 0
UNIQUE_ID = "powerbox-alpaca-switch-0"

# Global server transaction ID counter (thread-safe)
_transaction_counter = itertools.count(1)
_transaction_lock = threading.Lock()


def get_next_transaction_id() -> int:
    """
    Get next server transaction ID (thread-safe).

    Returns:
        Incremented transaction ID.
    """
    with _transaction_lock:
        return next(_transaction_counter)


def create_app(config: AppConfig, powerbox: Optional[PowerBox] = None) -> FastAPI:
    """
    Create the FastAPI application with the Alpaca Switch and device routes.

    Args:
        config: Application configuration.
        powerbox: Device served by the routes. May also be set later on
            ``app.state.powerbox``.

    Returns:
        Configured FastAPI app.
    """
    from powerbox_alpaca.api.routes import router as switch_router
    from powerbox_alpaca.api.device_api import router as device_router

    app = FastAPI(
        title="Power Box ASCOM Alpaca Driver",
        description="ASCOM Alpaca Switch driver for multi-port power distribution boxes",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.state.config = config
    app.state.powerbox = powerbox
    app.state.simulator = None
    app.state.poller = None

    # CORS middleware (allow all origins for Alpaca compatibility)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Catch all unhandled exceptions and return an Alpaca error response."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)

        client_id = 0
        try:
            if request.method == "GET":
                client_id = int(request.query_params.get("ClientTransactionID", 0))
            elif request.method == "PUT":
                form_data = await request.form()
                client_id = int(form_data.get("ClientTransactionID", 0))
        except (ValueError, TypeError):
            pass

        response = make_response(
            value=None,
            client_id=client_id,
            server_id=get_next_transaction_id(),
            error=exc
        )

        return JSONResponse(
            status_code=200,  # Alpaca always returns 200
            content=response.model_dump()
        )

    # Management API (Alpaca discovery clients read these)
    @app.get("/management/apiversions")
    async def get_api_versions():
        """Return supported Alpaca API versions."""
        return {"Value": [1]}

    @app.get("/management/v1/configureddevices")
    async def get_configured_devices():
        """Return list of configured devices."""
        return {
            "Value": [
                {
                    "DeviceName": "Power Box",
                    "DeviceType": DEVICE_TYPE,
                    "DeviceNumber": DEVICE_NUMBER,
                    "UniqueID": UNIQUE_ID
                }
            ]
        }

    @app.get("/management/v1/description")
    async def get_server_description():
        """Return server description."""
        return {
            "Value": {
                "ServerName": "Power Box Alpaca Driver",
                "Manufacturer": "Custom",
                "ManufacturerVersion": __version__,
                "Location": "localhost"
            }
        }

    # Port management
    @app.get("/api/v1/management/ports")
    def get_available_ports():
        """List all serial ports on the system."""
        ports = list_available_ports(include_bluetooth=True)
        return {
            "Value": [p.to_dict() for p in ports]
        }

    @app.post("/api/v1/management/scan")
    def scan_ports(request: Request):
        """Scan serial ports for power boxes, skipping the one in use."""
        skip_ports = []
        current_port = None
        box: Optional[PowerBox] = request.app.state.powerbox
        if box is not None and box.connected:
            current_port = box.connection.transport.port_name
            skip_ports.append(current_port)

        start_time = time.time()
        devices = scan_for_powerbox(
            timeout_seconds=config.serial.scan_timeout_seconds,
            baud=config.serial.baud,
            skip_ports=skip_ports,
        )
        elapsed_ms = int((time.time() - start_time) * 1000)

        return {
            "Value": [d.to_dict() for d in devices],
            "scan_duration_ms": elapsed_ms,
            "current_port": current_port,
        }

    @app.get(f"/setup/v1/switch/{DEVICE_NUMBER}/setup", response_class=HTMLResponse)
    def switch_setup_page(request: Request):
        """ASCOM Alpaca setup page."""
        box: Optional[PowerBox] = request.app.state.powerbox
        mode = "Simulator" if request.app.state.simulator is not None else "Hardware"
        return HTMLResponse(content=_setup_page_html(box, mode))

    app.include_router(switch_router)
    app.include_router(device_router)

    logger.info("FastAPI application created")
    return app


def _setup_page_html(box: Optional[PowerBox], mode: str) -> str:
    """Render a read-only status page listing every feature."""
    connected = box is not None and box.connected
    rows = ""
    name = port = "--"

    if connected:
        description = box.description
        name = html.escape(f"{description.name} (hw {description.hw_revision})")
        port = html.escape(box.connection.transport.port_name)
        for index, feature in enumerate(box.describe()):
            unit = feature.unit or ""
            rows += (
                f"<tr><td>{index}</td><td>{html.escape(feature.label)}</td>"
                f"<td>{feature.kind.value}</td><td>{feature.value:g} {html.escape(unit)}</td>"
                f"<td>{'yes' if feature.writable else 'no'}</td></tr>\n"
            )

    status = "Connected" if connected else "Disconnected"
    return f'''<!DOCTYPE html>
<html>
<head>
    <title>Power Box Driver Setup</title>
    <style>
        body {{ font-family: 'Segoe UI', Tahoma, sans-serif; max-width: 800px; margin: 40px auto;
               background: #1a1a2e; color: #eee; }}
        h1 {{ color: #4CAF50; }}
        table {{ width: 100%; border-collapse: collapse; }}
        td, th {{ padding: 6px; border-bottom: 1px solid #333; text-align: left; }}
        .status-connected {{ color: #4CAF50; }}
        .status-disconnected {{ color: #f44336; }}
    </style>
</head>
<body>
    <h1>Power Box Driver Setup</h1>
    <p>Mode: <b>{mode}</b> | Status: <b class="status-{status.lower()}">{status}</b></p>
    <p>Device: <b>{name}</b> | Port: <b>{port}</b></p>
    <table>
        <tr><th>#</th><th>Name</th><th>Kind</th><th>Value</th><th>Writable</th></tr>
{rows}    </table>
</body>
</html>'''
