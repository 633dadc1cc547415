"""
Receipt printing: one job in, one command buffer out to the sink.

Build, send and settle happen under a single lock: the printer is an
exclusive resource and at most one buffer may be in flight.
"""
import logging
import threading
import time
from typing import Callable, Optional

from token_receipt_printer.errors import DeviceError
from token_receipt_printer.jobs.models import PrintJob
from token_receipt_printer.printers.drivers import PrintSink
from token_receipt_printer.printers.escpos import EscPosBuilder, describe
from token_receipt_printer.receipt import amount
from token_receipt_printer.receipt.encoding import TextEncoder
from token_receipt_printer.receipt.formatter import ReceiptFormatter

logger = logging.getLogger(__name__)

DEFAULT_SETTLE_SECONDS = 3.0


class ReceiptPrinter:
    """Formats a PrintJob, encodes it and hands the buffer to the sink."""

    def __init__(self, sink: PrintSink, formatter: Optional[ReceiptFormatter] = None,
                 encoder: Optional[TextEncoder] = None,
                 settle_seconds: float = DEFAULT_SETTLE_SECONDS,
                 sleep: Callable[[float], None] = time.sleep):
        self.sink = sink
        self.formatter = formatter or ReceiptFormatter()
        self.builder = EscPosBuilder(encoder or TextEncoder(), self.formatter.mode)
        self.settle_seconds = settle_seconds
        self._sleep = sleep
        self._lock = threading.Lock()

    def render(self, job: PrintJob) -> bytes:
        """Build the full command buffer for ``job`` without printing it."""
        display_amount = amount.normalize(job.amount_raw, job.token)
        fragments = self.formatter.format(job, display_amount)
        buffer = self.builder.build(fragments)
        if logger.isEnabledFor(logging.DEBUG):
            for line in describe(buffer):
                logger.debug(f"  {line}")
        return buffer

    def print_job(self, job: PrintJob) -> None:
        """
        Print ``job`` and wait for the device to settle.

        Raises DeviceError if anything between formatting and the sink fails.
        """
        with self._lock:
            logger.info(f"Printing: {job}")
            try:
                buffer = self.render(job)
                self.sink.set_buffer(buffer)
                self.sink.print()
            except DeviceError:
                raise
            except Exception as e:
                logger.error(f"Print error for {job}: {e}", exc_info=True)
                raise DeviceError(f"Print failed for job {job.id}: {e}", {'job_id': job.id})

            if self.settle_seconds > 0:
                self._sleep(self.settle_seconds)
            logger.info(f"✓ Receipt printed: job {job.id} ({len(buffer)} bytes)")
