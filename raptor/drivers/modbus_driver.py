"""
Modbus TCP Drive Connections
=============================
Two connection disciplines, one per drive role:

  - Main drive: one long-lived connection owned by
    MainDriveConnection. The dispatcher and the poll loop both use
    it, so every call is serialized by a lock to keep a single
    request in flight on the TCP stream.
  - Child drives: a fresh connection per operation, closed right
    after. Reused child connections produced unreliable writes in
    the field, so they are never pooled.

All calls are bounded by the pymodbus client timeout.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterator, Optional

from pymodbus.client import ModbusTcpClient
from pymodbus.exceptions import ModbusException

from raptor.core.errors import ConnectFailed, TelemetryUnavailable, WriteFailed

logger = logging.getLogger(__name__)


class DriveRole(Enum):
    MAIN = "main"
    CHILD_INNER = "child-inner"
    CHILD_OUTER = "child-outer"


@dataclass(frozen=True)
class DriveEndpoint:
    """Network address of one physical drive."""
    role: DriveRole
    host: str
    port: int = 502
    unit_id: int = 1

    @property
    def label(self) -> str:
        return f"{self.role.value} ({self.host})"


ClientFactory = Callable[[DriveEndpoint, float], ModbusTcpClient]


def tcp_client_factory(endpoint: DriveEndpoint, timeout: float) -> ModbusTcpClient:
    """
    Default factory: a real pymodbus TCP client for the endpoint.

    Retries are off: a silent drive costs one timeout per call and
    no request is ever sent twice.
    """
    return ModbusTcpClient(endpoint.host, port=endpoint.port, timeout=timeout, retries=0)


def _checked(result, what: str):
    """Raise ModbusException for an error response, return it otherwise."""
    if result is None or result.isError():
        raise ModbusException(f"{what} error response: {result}")
    return result


@contextmanager
def fresh_connection(
    endpoint: DriveEndpoint,
    client_factory: ClientFactory = tcp_client_factory,
    timeout: float = 5.0,
) -> Iterator[ModbusTcpClient]:
    """Open a single-use connection to a drive and close it on exit."""
    client = client_factory(endpoint, timeout)
    try:
        connected = client.connect()
    except (ModbusException, OSError) as exc:
        client.close()
        raise ConnectFailed(endpoint.label, reason=str(exc)) from exc
    if not connected:
        client.close()
        raise ConnectFailed(endpoint.label, reason="connection refused or timed out")
    try:
        yield client
    finally:
        client.close()


def write_register_once(
    endpoint: DriveEndpoint,
    address: int,
    value: int,
    client_factory: ClientFactory = tcp_client_factory,
    timeout: float = 5.0,
    label: str = "",
) -> None:
    """Write one holding register over a fresh connection."""
    target = label or f"addr {address}"
    with fresh_connection(endpoint, client_factory, timeout) as client:
        try:
            _checked(
                client.write_register(address, value, slave=endpoint.unit_id),
                f"write {target}",
            )
        except (ModbusException, OSError) as exc:
            raise WriteFailed(endpoint.label, target, value, str(exc)) from exc


class MainDriveConnection:
    """
    Persistent connection to the main drive (chain motor + SoftPLC).

    Owns the only client for that drive. A failed call drops the
    socket so the next call reconnects; there is no retry within a
    call.
    """

    def __init__(
        self,
        endpoint: DriveEndpoint,
        client_factory: ClientFactory = tcp_client_factory,
        timeout: float = 5.0,
    ):
        self.endpoint = endpoint
        self._factory = client_factory
        self._timeout = timeout
        self._client: Optional[ModbusTcpClient] = None
        self._connected = False
        self._lock = threading.Lock()

    @property
    def is_connected(self) -> bool:
        return self._connected

    def connect(self) -> bool:
        """Establish the Modbus connection."""
        with self._lock:
            return self._connect_locked()

    def disconnect(self):
        """Close the Modbus connection."""
        with self._lock:
            if self._client:
                self._client.close()
            self._connected = False
            logger.info("Main drive %s disconnected", self.endpoint.label)

    def write_coil(self, address: int, value: bool) -> None:
        """Write a single coil at its 0-based wire address."""
        target = f"coil {address}"
        with self._lock:
            client = self._require_client(target)
            try:
                _checked(
                    client.write_coil(address, value, slave=self.endpoint.unit_id),
                    f"write {target}",
                )
            except (ModbusException, OSError) as exc:
                self._drop()
                raise WriteFailed(self.endpoint.label, target, int(value), str(exc)) from exc

    def read_coil(self, address: int) -> bool:
        """Read one coil at its 0-based wire address."""
        target = f"coil {address}"
        with self._lock:
            client = self._require_client(target)
            try:
                result = _checked(
                    client.read_coils(address, count=1, slave=self.endpoint.unit_id),
                    f"read {target}",
                )
            except (ModbusException, OSError) as exc:
                self._drop()
                raise TelemetryUnavailable(self.endpoint.label, target, reason=str(exc)) from exc
        if not result.bits:
            raise TelemetryUnavailable(self.endpoint.label, target, reason="empty coil read")
        return bool(result.bits[0])

    def write_register(self, address: int, value: int, label: str = "") -> None:
        """Write a single holding register at its 0-based wire address."""
        target = label or f"addr {address}"
        with self._lock:
            client = self._require_client(target)
            try:
                _checked(
                    client.write_register(address, value, slave=self.endpoint.unit_id),
                    f"write {target}",
                )
            except (ModbusException, OSError) as exc:
                self._drop()
                raise WriteFailed(self.endpoint.label, target, value, str(exc)) from exc

    # ── Internals (call with lock held) ──────────────────────

    def _connect_locked(self) -> bool:
        if self._client is None:
            self._client = self._factory(self.endpoint, self._timeout)
        try:
            self._connected = bool(self._client.connect())
        except (ModbusException, OSError):
            logger.exception("Main drive %s connect error", self.endpoint.label)
            self._connected = False
        if self._connected:
            logger.info("Main drive %s connected", self.endpoint.label)
        else:
            logger.error("Main drive %s connection failed", self.endpoint.label)
        return self._connected

    def _require_client(self, target: str) -> ModbusTcpClient:
        if not self._connected and not self._connect_locked():
            raise ConnectFailed(self.endpoint.label, target, reason="not connected")
        return self._client

    def _drop(self):
        if self._client:
            self._client.close()
        self._connected = False
