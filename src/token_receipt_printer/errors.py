"""
Exceptions raised by the receipt printer agent.

Hierarchy:
    ReceiptPrinterError (base)
    ├── ConfigError    - invalid or missing configuration (startup failure)
    ├── ParseError     - malformed amount / timestamp / queue item (recovered locally)
    ├── EncodingError  - text cannot be encoded for the printer (recovered locally)
    ├── NetworkError   - connect / timeout / DNS failure talking to the queue server
    ├── ServerError    - queue server answered with a non-2xx or unreadable body
    └── DeviceError    - print sink failed to accept or print a buffer

Network and server errors are absorbed by the polling loop (backoff).
Device errors turn into a "failed" job status. Nothing here should ever
terminate the worker thread.
"""
from typing import Any, Dict, Optional


class ReceiptPrinterError(Exception):
    """Base exception for all agent errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigError(ReceiptPrinterError):
    pass


class ParseError(ReceiptPrinterError):
    pass


class EncodingError(ReceiptPrinterError):
    pass


class NetworkError(ReceiptPrinterError):
    """The queue server could not be reached (connection refused, timeout, DNS)."""


class ServerError(ReceiptPrinterError):
    """The queue server responded, but not with a usable 2xx JSON body."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.status_code = status_code


class DeviceError(ReceiptPrinterError):
    """The print sink raised or refused the command buffer."""
