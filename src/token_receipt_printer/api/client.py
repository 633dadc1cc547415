"""
Receipt queue API client.

Endpoints (relative to the configured base URL):
  GET  /api/receipt/queue   pending print jobs
  POST /api/receipt/status  per-job status report
  GET  /api/receipt/stats   connectivity probe (any 200 = connected)

The server is usually exposed through an ngrok tunnel, which answers
browser-like requests with an HTML warning page unless the bypass header is
present. The header is sent on every request.
"""
import logging
from typing import List, Optional, Tuple

import requests

from token_receipt_printer import __version__
from token_receipt_printer.errors import NetworkError, ParseError, ServerError
from token_receipt_printer.jobs.models import JobStatus, PrintJob

logger = logging.getLogger(__name__)

QUEUE_PATH = '/api/receipt/queue'
STATUS_PATH = '/api/receipt/status'
STATS_PATH = '/api/receipt/stats'

DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_READ_TIMEOUT = 15.0
PROBE_TIMEOUTS = (8.0, 10.0)

DEFAULT_HEADERS = {
    'Content-Type': 'application/json',
    'Accept': 'application/json',
    'User-Agent': f'token-receipt-printer/{__version__}',
    'ngrok-skip-browser-warning': 'true',
}


class QueueClient:
    """Thin requests.Session wrapper that maps failures onto NetworkError / ServerError."""

    def __init__(self, base_url: str,
                 connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
                 read_timeout: float = DEFAULT_READ_TIMEOUT,
                 session: Optional[requests.Session] = None):
        if not base_url:
            raise ValueError("base_url is required")
        self.base_url = base_url.rstrip('/')
        self.timeout: Tuple[float, float] = (connect_timeout, read_timeout)
        self.session = session or requests.Session()
        self.session.headers.update(DEFAULT_HEADERS)

    def close(self) -> None:
        self.session.close()

    def _request(self, method: str, path: str, timeout=None, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(method, url, timeout=timeout or self.timeout, **kwargs)
        except requests.exceptions.Timeout as e:
            raise NetworkError(f"Timeout talking to {url}: {e}", {'url': url})
        except requests.exceptions.ConnectionError as e:
            raise NetworkError(f"Cannot connect to {url}: {e}", {'url': url})
        except requests.exceptions.RequestException as e:
            raise NetworkError(f"Request to {url} failed: {e}", {'url': url})

        logger.debug(f"{method} {url} → HTTP {resp.status_code}")
        if not 200 <= resp.status_code < 300:
            raise ServerError(
                f"{method} {url} returned HTTP {resp.status_code}",
                status_code=resp.status_code,
                details={'body': resp.text[:200]},
            )
        return resp

    def fetch_pending(self) -> List[PrintJob]:
        """Return the pending jobs in the order the server lists them."""
        resp = self._request('GET', QUEUE_PATH)
        try:
            payload = resp.json()
        except ValueError as e:
            raise ServerError(f"Queue response is not JSON: {e}", status_code=resp.status_code,
                              details={'body': resp.text[:200]})
        if not isinstance(payload, dict):
            raise ServerError("Queue response is not a JSON object", status_code=resp.status_code)

        if payload.get('status') != 'success':
            logger.warning(f"Queue returned status {payload.get('status')!r}, nothing to print")
            return []

        pending = payload.get('pendingItems') or 0
        logger.debug(f"Pending print jobs: {pending}")
        if not pending:
            return []

        jobs = []
        for item in payload.get('items') or []:
            try:
                jobs.append(PrintJob.from_item(item))
            except ParseError as e:
                logger.error(f"Skipping malformed queue item: {e}")
        return jobs

    def report_status(self, job_id: str, status: JobStatus, error_message: Optional[str] = None) -> None:
        body = {'printId': job_id, 'status': status.value}
        if error_message is not None:
            body['errorMessage'] = error_message
        logger.debug(f"Reporting status: {body}")
        self._request('POST', STATUS_PATH, json=body)
        logger.info(f"Status reported for job {job_id}: {status.value}")

    def check_connection(self) -> bool:
        """Probe the stats endpoint. Never raises."""
        try:
            self._request('GET', STATS_PATH, timeout=PROBE_TIMEOUTS)
        except (NetworkError, ServerError) as e:
            logger.warning(f"Server connection test failed: {e}")
            return False
        logger.info(f"✓ Connected to {self.base_url}")
        return True
