import time
import unittest
from unittest.mock import MagicMock

from token_receipt_printer.errors import DeviceError, NetworkError, ServerError
from token_receipt_printer.jobs.models import PrintJob
from token_receipt_printer.jobs.worker import PollingWorker, WorkerState


class TestPollingWorker(unittest.TestCase):

    def setUp(self):
        self.events = []
        self.client = MagicMock()
        self.client.base_url = 'http://queue.test'
        self.client.fetch_pending.return_value = []
        self.client.report_status.side_effect = self._record_report
        self.printer = MagicMock()
        self.printer.print_job.side_effect = self._record_print
        self.worker = PollingWorker(self.client, self.printer, interval=3.0)

    def _record_report(self, job_id, status, error_message=None):
        self.events.append(('report', job_id, status.value, error_message))

    def _record_print(self, job):
        self.events.append(('print', job.id))

    def jobs(self, *ids):
        return [PrintJob(id=job_id, amount_raw='1000000000000000000') for job_id in ids]

    def test_batch_is_processed_in_order(self):
        self.client.fetch_pending.return_value = self.jobs('a', 'b')
        self.assertTrue(self.worker.run_cycle())
        self.assertEqual(self.events, [
            ('report', 'a', 'printing', None),
            ('print', 'a'),
            ('report', 'a', 'completed', None),
            ('report', 'b', 'printing', None),
            ('print', 'b'),
            ('report', 'b', 'completed', None),
        ])
        self.assertEqual(self.worker.jobs_completed, 2)

    def test_device_failure_does_not_stop_batch(self):
        def print_job(job):
            if job.id == 'b':
                raise DeviceError('paper out')
            self._record_print(job)

        self.printer.print_job.side_effect = print_job
        self.client.fetch_pending.return_value = self.jobs('a', 'b', 'c')

        self.assertTrue(self.worker.run_cycle())
        self.assertEqual(self.events, [
            ('report', 'a', 'printing', None),
            ('print', 'a'),
            ('report', 'a', 'completed', None),
            ('report', 'b', 'printing', None),
            ('report', 'b', 'failed', 'paper out'),
            ('report', 'c', 'printing', None),
            ('print', 'c'),
            ('report', 'c', 'completed', None),
        ])
        self.assertEqual(self.worker.jobs_completed, 2)
        self.assertEqual(self.worker.jobs_failed, 1)
        self.assertEqual(self.worker.last_error, 'paper out')

    def test_unexpected_print_error_is_reported(self):
        self.printer.print_job.side_effect = RuntimeError()
        self.client.fetch_pending.return_value = self.jobs('a')
        self.worker.run_cycle()
        self.assertEqual(self.events[-1], ('report', 'a', 'failed', 'RuntimeError'))

    def test_job_not_printed_when_printing_report_fails(self):
        def report(job_id, status, error_message=None):
            if job_id == 'a':
                raise NetworkError('connection reset')
            self._record_report(job_id, status, error_message)

        self.client.report_status.side_effect = report
        self.client.fetch_pending.return_value = self.jobs('a', 'b')

        self.assertFalse(self.worker.run_cycle())
        self.assertNotIn(('print', 'a'), self.events)
        self.assertEqual(self.events, [
            ('report', 'b', 'printing', None),
            ('print', 'b'),
            ('report', 'b', 'completed', None),
        ])

    def test_terminal_report_failure_is_only_logged(self):
        def report(job_id, status, error_message=None):
            if status.value == 'completed':
                raise ServerError('HTTP 500', status_code=500)
            self._record_report(job_id, status, error_message)

        self.client.report_status.side_effect = report
        self.client.fetch_pending.return_value = self.jobs('a')

        self.assertTrue(self.worker.run_cycle())
        self.assertEqual(self.events, [('report', 'a', 'printing', None), ('print', 'a')])
        self.assertEqual(self.worker.jobs_completed, 1)

    def test_fetch_failure(self):
        self.client.fetch_pending.side_effect = ServerError('HTTP 502', status_code=502)
        self.assertFalse(self.worker.run_cycle())
        self.assertIn('HTTP 502', self.worker.last_error)
        self.printer.print_job.assert_not_called()

    def test_next_delay(self):
        self.assertEqual(self.worker.next_delay(True), 3.0)
        self.assertEqual(self.worker.next_delay(False), 6.0)

    def test_loop_backs_off_after_error(self):
        self.client.fetch_pending.side_effect = [NetworkError('down'), [], []]
        delays = []

        def wait(delay):
            delays.append(delay)
            if len(delays) == 3:
                self.worker.stop()
            return False

        self.worker._stop_event.wait = wait
        self.worker._run()

        self.assertEqual(delays, [6.0, 3.0, 3.0])
        self.assertEqual(self.client.fetch_pending.call_count, 3)
        self.assertEqual(self.worker.state, WorkerState.IDLE)

    def test_start_stop_restart(self):
        worker = PollingWorker(self.client, self.printer, interval=0.01)
        self.assertTrue(worker.start())
        self.assertTrue(worker.is_running)
        self.assertFalse(worker.start())

        worker.stop()
        self.assertTrue(worker.join(timeout=2))
        self.assertFalse(worker.is_running)

        fetches = self.client.fetch_pending.call_count
        time.sleep(0.05)
        self.assertEqual(self.client.fetch_pending.call_count, fetches)

        self.assertTrue(worker.start())
        worker.stop()
        self.assertTrue(worker.join(timeout=2))
        self.assertGreater(self.client.fetch_pending.call_count, fetches)

    def test_unexpected_printing_report_error_leaves_job_queued(self):
        def report(job_id, status, error_message=None):
            if job_id == 'a':
                raise TypeError('boom')
            self._record_report(job_id, status, error_message)

        self.client.report_status.side_effect = report
        self.client.fetch_pending.return_value = self.jobs('a', 'b')

        self.assertFalse(self.worker.run_cycle())
        self.assertNotIn(('print', 'a'), self.events)
        self.assertIn(('print', 'b'), self.events)
        self.assertEqual(self.worker.last_error, 'boom')

    def test_unexpected_terminal_report_error_is_only_logged(self):
        def report(job_id, status, error_message=None):
            if status.value == 'completed':
                raise TypeError('boom')
            self._record_report(job_id, status, error_message)

        self.client.report_status.side_effect = report
        self.client.fetch_pending.return_value = self.jobs('a')
        self.assertTrue(self.worker.run_cycle())
        self.assertEqual(self.worker.jobs_completed, 1)

    def test_loop_survives_unexpected_cycle_error(self):
        self.worker.run_cycle = MagicMock(side_effect=[RuntimeError('boom'), True, True])
        delays = []

        def wait(delay):
            delays.append(delay)
            if len(delays) == 3:
                self.worker.stop()
            return False

        self.worker._stop_event.wait = wait
        self.worker._run()

        self.assertEqual(delays, [6.0, 3.0, 3.0])
        self.assertEqual(self.worker.run_cycle.call_count, 3)

    def test_thread_keeps_polling_when_reports_raise(self):
        self.client.report_status.side_effect = TypeError('boom')
        self.client.fetch_pending.return_value = self.jobs('a')
        worker = PollingWorker(self.client, self.printer, interval=0.01)
        worker.start()
        try:
            deadline = time.monotonic() + 2
            while self.client.fetch_pending.call_count < 3 and time.monotonic() < deadline:
                time.sleep(0.01)
            self.assertTrue(worker.is_running)
        finally:
            worker.stop()
            worker.join(timeout=2)
        self.assertGreaterEqual(self.client.fetch_pending.call_count, 3)
        self.printer.print_job.assert_not_called()

    def test_status_listener(self):
        messages = []
        worker = PollingWorker(self.client, self.printer, status_listener=messages.append)
        self.client.fetch_pending.return_value = self.jobs('a')
        worker.run_cycle()
        self.assertEqual(messages, ['Printing a', 'Printed a'])

    def test_broken_listener_is_ignored(self):
        listener = MagicMock(side_effect=RuntimeError('ui gone'))
        worker = PollingWorker(self.client, self.printer, status_listener=listener)
        self.client.fetch_pending.return_value = self.jobs('a')
        self.assertTrue(worker.run_cycle())
        self.assertEqual(worker.jobs_completed, 1)


if __name__ == '__main__':
    unittest.main()
