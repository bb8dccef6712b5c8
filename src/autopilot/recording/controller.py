"""RecordingController -- idempotent start/stop binding to a recording device.

The device is OBS Studio reached over obs-websocket v5 (via obsws-python).
Starting an already-running recording or stopping an idle one is a silent
no-op; any other device failure surfaces as DeviceError for the caller to
log. ``is_recording()`` is best-effort and answers False whenever the device
cannot confirm otherwise.

Connection establishment retries with tenacity (3 attempts, exponential
backoff) and then settles in ConnectionState.ERROR.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable
from enum import Enum
from typing import Any
from urllib.parse import urlparse

import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from src.autopilot.automation.errors import DeviceError, RecordingStateConflict
from src.autopilot.core.monitoring import recording_commands_total

logger = structlog.get_logger(__name__)

DEFAULT_OBS_PORT = 4455

# obs-websocket v5 RequestStatus codes for "already in that state"
OBS_OUTPUT_RUNNING = 500
OBS_OUTPUT_NOT_RUNNING = 501


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class RecordingDevice(ABC):
    """Abstract control surface of a recording device.

    Implementations raise RecordingStateConflict when asked to enter the
    state they are already in, and DeviceError for every other failure.
    """

    @abstractmethod
    async def connect(self) -> None:
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        ...

    @abstractmethod
    async def start_recording(self) -> None:
        ...

    @abstractmethod
    async def stop_recording(self) -> None:
        ...

    @abstractmethod
    async def is_recording(self) -> bool:
        ...


def parse_obs_address(address: str) -> tuple[str, int]:
    """Split ``ws://host:port`` (scheme optional) into host and port."""
    target = address if "://" in address else f"ws://{address}"
    parsed = urlparse(target)
    return parsed.hostname or "localhost", parsed.port or DEFAULT_OBS_PORT


class ObsRecordingDevice(RecordingDevice):
    """OBS Studio over obs-websocket v5.

    obsws-python is synchronous; every call runs in a worker thread so the
    event loop never blocks on the socket.

    Args:
        address: ``ws://host:port`` of the OBS websocket server.
        password: Server password, empty when authentication is off.
        timeout: Socket timeout in seconds.
    """

    def __init__(self, address: str, password: str = "", timeout: float = 5.0) -> None:
        self._host, self._port = parse_obs_address(address)
        self._password = password
        self._timeout = timeout
        self._client: Any = None

    async def connect(self) -> None:
        import obsws_python as obs

        def _open() -> Any:
            return obs.ReqClient(
                host=self._host,
                port=self._port,
                password=self._password,
                timeout=self._timeout,
            )

        try:
            self._client = await asyncio.to_thread(_open)
        except Exception as exc:
            raise DeviceError(
                f"Cannot connect to OBS at {self._host}:{self._port}: {exc}"
            ) from exc
        logger.info("obs.connected", host=self._host, port=self._port)

    async def disconnect(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            await asyncio.to_thread(client.disconnect)
        except Exception as exc:
            raise DeviceError(f"Error disconnecting from OBS: {exc}") from exc

    async def start_recording(self) -> None:
        await self._call("start_record", OBS_OUTPUT_RUNNING)

    async def stop_recording(self) -> None:
        await self._call("stop_record", OBS_OUTPUT_NOT_RUNNING)

    async def is_recording(self) -> bool:
        status = await self._call("get_record_status")
        return bool(getattr(status, "output_active", False))

    async def _call(self, method: str, conflict_code: int | None = None) -> Any:
        from obsws_python.error import OBSSDKRequestError

        if self._client is None:
            raise DeviceError("OBS is not connected")
        try:
            return await asyncio.to_thread(getattr(self._client, method))
        except OBSSDKRequestError as exc:
            if conflict_code is not None and exc.code == conflict_code:
                raise RecordingStateConflict(f"{method}: {exc}") from exc
            raise DeviceError(f"{method} failed: {exc}") from exc
        except Exception as exc:
            raise DeviceError(f"{method} failed: {exc}") from exc


DeviceFactory = Callable[[str, str], RecordingDevice]


class RecordingController:
    """Idempotent recording control with a tracked connection state.

    Args:
        address: Default device address used by connect().
        password: Default device password used by connect().
        device_factory: Builds a RecordingDevice from (address, password).
            Defaults to ObsRecordingDevice.
    """

    def __init__(
        self,
        address: str,
        password: str = "",
        device_factory: DeviceFactory | None = None,
        timeout: float = 5.0,
    ) -> None:
        self._address = address
        self._password = password
        self._device_factory = device_factory or (
            lambda addr, pwd: ObsRecordingDevice(addr, pwd, timeout=timeout)
        )
        self._device: RecordingDevice | None = None
        self._state = ConnectionState.DISCONNECTED
        self._last_error: str | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def address(self) -> str:
        return self._address

    # ── Connection ───────────────────────────────────────────────────────

    async def connect(
        self, address: str | None = None, password: str | None = None
    ) -> ConnectionState:
        """Connect to the device, replacing any existing connection.

        Returns the resulting state (CONNECTED or ERROR); never raises.
        """
        if address is not None:
            self._address = address
        if password is not None:
            self._password = password

        await self.disconnect()
        self._state = ConnectionState.CONNECTING
        device = self._device_factory(self._address, self._password)

        try:
            await self._open(device)
        except DeviceError as exc:
            self._state = ConnectionState.ERROR
            self._last_error = str(exc)
            logger.warning("recording.connect_failed", address=self._address, error=str(exc))
            return self._state

        self._device = device
        self._state = ConnectionState.CONNECTED
        self._last_error = None
        logger.info("recording.connected", address=self._address)
        return self._state

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type(DeviceError),
        reraise=True,
    )
    async def _open(self, device: RecordingDevice) -> None:
        await device.connect()

    async def disconnect(self) -> None:
        """Drop the device connection. Never raises."""
        device, self._device = self._device, None
        if device is not None:
            try:
                await device.disconnect()
            except DeviceError as exc:
                logger.warning("recording.disconnect_failed", error=str(exc))
            logger.info("recording.disconnected", address=self._address)
        self._state = ConnectionState.DISCONNECTED

    # ── Commands ─────────────────────────────────────────────────────────

    async def start_recording(self) -> None:
        """Start recording; a device that is already recording is left as is.

        Raises:
            DeviceError: Not connected, or the device call failed.
        """
        await self._command("start", lambda device: device.start_recording())

    async def stop_recording(self) -> None:
        """Stop recording; a device that is not recording is left as is.

        Raises:
            DeviceError: Not connected, or the device call failed.
        """
        await self._command("stop", lambda device: device.stop_recording())

    async def is_recording(self) -> bool:
        """Best-effort recording status; False when it cannot be confirmed."""
        if self._device is None:
            return False
        try:
            return await self._device.is_recording()
        except DeviceError as exc:
            logger.debug("recording.status_unavailable", error=str(exc))
            return False

    async def _command(self, command: str, call: Callable[[RecordingDevice], Any]) -> None:
        device = self._device
        if device is None:
            recording_commands_total.labels(command=command, outcome="not_connected").inc()
            raise DeviceError("Recording device is not connected")

        try:
            await call(device)
        except RecordingStateConflict:
            recording_commands_total.labels(command=command, outcome="already").inc()
            logger.debug("recording.already_in_state", command=command)
            return
        except DeviceError:
            recording_commands_total.labels(command=command, outcome="error").inc()
            raise

        recording_commands_total.labels(command=command, outcome="ok").inc()
        logger.info("recording.command_sent", command=command)
