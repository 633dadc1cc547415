"""
Polling worker: the agent's only background thread.

Each tick fetches the pending queue and prints the batch strictly in order:

    report printing → build + send + settle → report completed | failed

A failed fetch doubles the wait before the next tick; the next successful
cycle goes back to the base interval. Nothing that happens while printing a
single job stops the loop. Only stop() does, and it takes effect once the
current cycle (including its whole batch) has finished.
"""
import logging
import threading
from enum import Enum
from typing import Callable, Optional

from token_receipt_printer.api.client import QueueClient
from token_receipt_printer.errors import DeviceError, NetworkError, ServerError
from token_receipt_printer.jobs.models import JobStatus, PrintJob
from token_receipt_printer.jobs.processor import ReceiptPrinter

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 3.0
BACKOFF_FACTOR = 2


class WorkerState(Enum):
    IDLE = 'idle'
    RUNNING = 'running'


class PollingWorker:

    def __init__(self, client: QueueClient, printer: ReceiptPrinter,
                 interval: float = DEFAULT_INTERVAL_SECONDS,
                 status_listener: Optional[Callable[[str], None]] = None):
        self.client = client
        self.printer = printer
        self.interval = interval
        self.status_listener = status_listener

        self.state = WorkerState.IDLE
        self.cycles = 0
        self.jobs_completed = 0
        self.jobs_failed = 0
        self.last_error: Optional[str] = None

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._state_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self.state is WorkerState.RUNNING

    def start(self) -> bool:
        """Start the polling thread. Returns False if it is already running."""
        with self._state_lock:
            if self._thread is not None and self._thread.is_alive():
                logger.warning("Polling worker already running")
                return False
            self._stop_event.clear()
            self.state = WorkerState.RUNNING
            self._thread = threading.Thread(target=self._run, name='receipt-poller', daemon=True)
            self._thread.start()

        logger.info(f"Polling started: {self.client.base_url} every {self.interval:g}s")
        self._notify(f"Polling {self.client.base_url}")
        return True

    def stop(self) -> None:
        """Ask the loop to stop; the in-flight cycle is allowed to finish."""
        if self._stop_event.is_set():
            return
        self._stop_event.set()
        logger.info("Polling stop requested")

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the thread to exit. Returns True once it has."""
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def _run(self) -> None:
        try:
            while not self._stop_event.is_set():
                try:
                    ok = self.run_cycle()
                except Exception as e:
                    self.last_error = str(e)
                    logger.error(f"Polling cycle failed: {e}", exc_info=True)
                    ok = False
                self._stop_event.wait(self.next_delay(ok))
        finally:
            self.state = WorkerState.IDLE
            logger.info("Polling stopped")
            self._notify("Stopped")

    def next_delay(self, last_cycle_ok: bool) -> float:
        return self.interval if last_cycle_ok else self.interval * BACKOFF_FACTOR

    # ------------------------------------------------------------------
    # One tick
    # ------------------------------------------------------------------

    def run_cycle(self) -> bool:
        """
        Fetch and print one batch.

        Returns False when the cycle hit a network/server error, which makes
        the next tick wait longer.
        """
        self.cycles += 1
        try:
            jobs = self.client.fetch_pending()
        except (NetworkError, ServerError) as e:
            self.last_error = str(e)
            logger.error(f"Queue fetch failed: {e}")
            self._notify(f"Server error: {e.message}")
            return False
        except Exception as e:
            self.last_error = str(e)
            logger.error(f"Unexpected error while fetching queue: {e}", exc_info=True)
            return False

        if jobs:
            logger.info(f"Fetched {len(jobs)} pending job(s)")

        ok = True
        for job in jobs:
            if not self.process_job(job):
                ok = False
        return ok

    def process_job(self, job: PrintJob) -> bool:
        """
        Drive one job through printing → completed | failed.

        Returns False only when the server could not be told that printing
        started; the job is then left pending and picked up again later.
        """
        status = JobStatus.PENDING
        try:
            status = self._report(job, status, JobStatus.PRINTING)
        except (NetworkError, ServerError) as e:
            self.last_error = str(e)
            logger.error(f"Could not mark job {job.id} as printing, leaving it queued: {e}")
            return False
        except Exception as e:
            self.last_error = str(e)
            logger.error(f"Unexpected error marking job {job.id} as printing, leaving it queued: {e}",
                         exc_info=True)
            return False

        self._notify(f"Printing {job.id}")
        error_message = None
        try:
            self.printer.print_job(job)
        except DeviceError as e:
            error_message = e.message
        except Exception as e:
            logger.error(f"Unexpected print failure for {job}: {e}", exc_info=True)
            error_message = str(e) or e.__class__.__name__

        if error_message is None:
            self.jobs_completed += 1
            terminal = JobStatus.COMPLETED
            self._notify(f"Printed {job.id}")
        else:
            self.jobs_failed += 1
            self.last_error = error_message
            terminal = JobStatus.FAILED
            logger.error(f"Print job failed: {job.id}: {error_message}")
            self._notify(f"Print failed: {error_message}")

        try:
            self._report(job, status, terminal, error_message)
        except (NetworkError, ServerError) as e:
            # The receipt is already out; no retry, the server will notice.
            logger.error(f"Could not report {terminal.value} for job {job.id}: {e}")
        except Exception as e:
            logger.error(f"Unexpected error reporting {terminal.value} for job {job.id}: {e}", exc_info=True)
        return True

    def _report(self, job: PrintJob, current: JobStatus, new: JobStatus,
                error_message: Optional[str] = None) -> JobStatus:
        if not current.can_transition(new):
            raise ValueError(f"Illegal status transition for job {job.id}: {current.value} → {new.value}")
        self.client.report_status(job.id, new, error_message)
        return new

    def _notify(self, message: str) -> None:
        if self.status_listener is None:
            return
        try:
            self.status_listener(message)
        except Exception as e:
            logger.warning(f"Status listener raised: {e}")
