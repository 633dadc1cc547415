"""
Print sink implementations.

A sink takes one finished command buffer (set_buffer) and pushes it to the
device (print). There is no acknowledgment channel: a print() that returns
without raising counts as success. Failures are raised as DeviceError.

Types:
  serial: thermal printer on a serial tty (pyserial), 115200 baud default
  tcp:    raw TCP socket (port 9100 default)
  file:   writes each buffer to a .bin file, for dry runs without hardware
"""

import datetime
import logging
import socket
from pathlib import Path
from typing import Optional

import serial

from token_receipt_printer.errors import ConfigError, DeviceError

logger = logging.getLogger(__name__)

SOCKET_TIMEOUT = 10
SERIAL_WRITE_TIMEOUT = 10

DEFAULT_SERIAL_PORT = '/dev/ttyS4'
DEFAULT_BAUD_RATE = 115200
DEFAULT_TCP_PORT = 9100


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------

class PrintSink:
    def __init__(self):
        self._buffer: Optional[bytes] = None

    def set_buffer(self, buffer: bytes) -> None:
        self._buffer = bytes(buffer)

    def print(self) -> None:
        if self._buffer is None:
            raise DeviceError(f"{self} has no buffer to print")
        buffer, self._buffer = self._buffer, None
        self._write(buffer)

    def _write(self, buffer: bytes) -> None:
        raise NotImplementedError

    def test_connection(self) -> bool:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Serial (pyserial)
# ---------------------------------------------------------------------------

class SerialSink(PrintSink):
    """Opens the tty for each job, writes the whole buffer, closes it again."""

    def __init__(self, port: str = DEFAULT_SERIAL_PORT, baud_rate: int = DEFAULT_BAUD_RATE):
        super().__init__()
        self.port = port
        self.baud_rate = baud_rate

    def _write(self, buffer: bytes) -> None:
        logger.info(f"Serial → {self.port} @ {self.baud_rate} ({len(buffer)} bytes)")
        try:
            with serial.Serial(self.port, self.baud_rate, write_timeout=SERIAL_WRITE_TIMEOUT) as ser:
                ser.write(buffer)
                ser.flush()
        except serial.SerialException as e:
            raise DeviceError(f"Serial error on {self.port}: {e}", {'port': self.port})
        logger.info(f"✓ Sent to {self.port}")

    def test_connection(self) -> bool:
        return Path(self.port).exists()

    def __str__(self):
        return f"SerialSink({self.port})"


# ---------------------------------------------------------------------------
# Raw TCP
# ---------------------------------------------------------------------------

class RawTCPSink(PrintSink):
    """Sends raw bytes over a TCP socket (network ESC/POS printers)."""

    def __init__(self, host: str, port: int = DEFAULT_TCP_PORT):
        super().__init__()
        if not host:
            raise ConfigError("tcp printer requires a host")
        self.host = host
        self.port = port

    def _write(self, buffer: bytes) -> None:
        logger.info(f"TCP → {self.host}:{self.port} ({len(buffer)} bytes)")
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
                sock.settimeout(SOCKET_TIMEOUT)
                sock.connect((self.host, self.port))
                sock.sendall(buffer)
        except socket.timeout:
            raise DeviceError(f"Timeout connecting to {self.host}:{self.port}")
        except OSError as e:
            raise DeviceError(f"Socket error → {self.host}:{self.port}: {e}")
        logger.info(f"✓ Sent to {self.host}:{self.port}")

    def test_connection(self) -> bool:
        try:
            with socket.create_connection((self.host, self.port), timeout=5):
                return True
        except OSError:
            return False

    def __str__(self):
        return f"RawTCPSink({self.host}:{self.port})"


# ---------------------------------------------------------------------------
# File (dry run)
# ---------------------------------------------------------------------------

class FileSink(PrintSink):
    """Saves every buffer as print_job_<timestamp>_<n>.bin in output_dir."""

    def __init__(self, output_dir: str = 'print_jobs'):
        super().__init__()
        self.output_dir = Path(output_dir)
        self.count = 0
        self.last_path: Optional[Path] = None

    def _write(self, buffer: bytes) -> None:
        self.count += 1
        stamp = datetime.datetime.now().strftime('%Y%m%d_%H%M%S')
        path = self.output_dir / f"print_job_{stamp}_{self.count:03d}.bin"
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(buffer)
        except OSError as e:
            raise DeviceError(f"Could not write {path}: {e}")
        self.last_path = path
        logger.info(f"✓ Saved {len(buffer)} bytes to {path}")

    def test_connection(self) -> bool:
        return True

    def __str__(self):
        return f"FileSink({self.output_dir})"


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def get_sink(printer_type: str, serial_port: str = DEFAULT_SERIAL_PORT,
             baud_rate: int = DEFAULT_BAUD_RATE, host: str = '',
             port: int = DEFAULT_TCP_PORT, output_dir: str = 'print_jobs') -> PrintSink:
    """
    Return the sink for the configured printer type.

    Args:
        printer_type: serial | tcp | file
    """
    t = (printer_type or 'serial').lower().strip()
    if t == 'serial':
        return SerialSink(serial_port, baud_rate)
    if t == 'tcp':
        return RawTCPSink(host, port)
    if t == 'file':
        return FileSink(output_dir)
    raise ConfigError(f"Unknown printer type: {t!r}", {'choices': ['serial', 'tcp', 'file']})
