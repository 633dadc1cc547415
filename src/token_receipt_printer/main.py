"""
Main entry point for the Token Receipt Printer.
Polls the receipt queue and prints payment receipts until interrupted.
"""
import sys
import signal
import threading
from typing import Optional

from token_receipt_printer.api.client import QueueClient
from token_receipt_printer.config.manager import ConfigManager, Settings
from token_receipt_printer.errors import ConfigError
from token_receipt_printer.jobs.processor import ReceiptPrinter
from token_receipt_printer.jobs.worker import PollingWorker
from token_receipt_printer.logging import get_logger, setup_logging
from token_receipt_printer.printers.drivers import get_sink
from token_receipt_printer.receipt.encoding import TextEncoder
from token_receipt_printer.receipt.formatter import ReceiptFormatter

logger = get_logger(__name__)


def build_client(settings: Settings) -> QueueClient:
    return QueueClient(
        settings.base_url,
        connect_timeout=settings.connect_timeout,
        read_timeout=settings.read_timeout,
    )


def build_printer(settings: Settings, printer_type: Optional[str] = None) -> ReceiptPrinter:
    sink = get_sink(
        printer_type or settings.printer_type,
        serial_port=settings.serial_port,
        baud_rate=settings.baud_rate,
        host=settings.printer_host,
        port=settings.printer_port,
        output_dir=settings.output_dir,
    )
    formatter = ReceiptFormatter(
        mode=settings.receipt_mode,
        product_name=settings.product_name,
        timezone_name=settings.timezone,
    )
    return ReceiptPrinter(
        sink,
        formatter=formatter,
        encoder=TextEncoder(settings.encodings),
        settle_seconds=settings.settle_seconds,
    )


def build_worker(settings: Settings) -> PollingWorker:
    return PollingWorker(
        build_client(settings),
        build_printer(settings),
        interval=settings.poll_interval,
    )


def run_server(config: Optional[ConfigManager] = None) -> int:
    """Start the polling worker and block until SIGINT/SIGTERM."""
    try:
        config = config or ConfigManager()
        settings = config.settings()
    except ConfigError as e:
        setup_logging()
        logger.error(f"Configuration error: {e}")
        return 1

    setup_logging(settings.log_level, settings.log_file or None)
    if not config.exists():
        logger.warning("No config file found, running with packaged defaults")

    try:
        worker = build_worker(settings)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    logger.info("━" * 45)
    logger.info("Token Receipt Printer starting")
    logger.info(f"Server:   {settings.base_url}")
    logger.info(f"Interval: {settings.poll_interval_ms}ms")
    logger.info(f"Printer:  {worker.printer.sink}")
    logger.info(f"Receipt:  {settings.receipt_mode}")
    logger.info("━" * 45)

    if not worker.client.check_connection():
        logger.warning("Queue server not reachable yet, will keep polling")
    if not worker.printer.sink.test_connection():
        logger.warning(f"Printer {worker.printer.sink} not reachable, jobs will fail until it is")

    stopped = threading.Event()

    def _shutdown(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        worker.stop()
        stopped.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    worker.start()
    try:
        while not stopped.wait(1.0):
            pass
    finally:
        worker.stop()
        worker.join()
        worker.client.close()
        logger.info(f"Printed {worker.jobs_completed} receipt(s), {worker.jobs_failed} failed")
    return 0


def main():
    """Main entry point."""
    sys.exit(run_server())


if __name__ == "__main__":
    main()
