"""Recording device connection and status endpoints."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from src.autopilot.recording.controller import ConnectionState, RecordingController

router = APIRouter(prefix="/recording", tags=["recording"])


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RecordingConnectRequest(_CamelModel):
    """Overrides for the configured device address and password."""

    address: str | None = None
    password: str | None = None


class RecordingStatus(_CamelModel):
    connection_state: ConnectionState
    address: str
    recording: bool
    error: str | None = None


def _get_controller(request: Request) -> RecordingController:
    """Retrieve RecordingController from app.state, 503 if not available."""
    controller = getattr(request.app.state, "recording_controller", None)
    if controller is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Recording controller not available",
        )
    return controller


async def _status(controller: RecordingController) -> RecordingStatus:
    return RecordingStatus(
        connection_state=controller.state,
        address=controller.address,
        recording=await controller.is_recording(),
        error=controller.last_error,
    )


@router.get("", response_model=RecordingStatus)
async def get_recording(request: Request) -> RecordingStatus:
    return await _status(_get_controller(request))


@router.post("/connect", response_model=RecordingStatus)
async def connect_recording(
    request: Request, body: RecordingConnectRequest | None = None
) -> RecordingStatus:
    """Connect (or reconnect) to the recording device.

    A failed connection is reported through ``connectionState: error``
    rather than an HTTP error.
    """
    controller = _get_controller(request)
    body = body or RecordingConnectRequest()
    await controller.connect(body.address, body.password)
    return await _status(controller)


@router.post("/disconnect", response_model=RecordingStatus)
async def disconnect_recording(request: Request) -> RecordingStatus:
    controller = _get_controller(request)
    await controller.disconnect()
    return await _status(controller)
