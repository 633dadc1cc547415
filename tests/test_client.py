import unittest
from unittest.mock import MagicMock

import requests

from token_receipt_printer.api.client import PROBE_TIMEOUTS, QueueClient
from token_receipt_printer.errors import NetworkError, ServerError
from token_receipt_printer.jobs.models import JobStatus


def make_response(status_code=200, payload=None, text=''):
    resp = MagicMock()
    resp.status_code = status_code
    resp.text = text
    if isinstance(payload, Exception):
        resp.json.side_effect = payload
    else:
        resp.json.return_value = payload
    return resp


class TestQueueClient(unittest.TestCase):

    def setUp(self):
        self.session = MagicMock()
        self.session.headers = {}
        self.client = QueueClient('https://queue.example.com/', session=self.session)

    def test_headers_and_base_url(self):
        self.assertEqual(self.client.base_url, 'https://queue.example.com')
        self.assertEqual(self.session.headers['ngrok-skip-browser-warning'], 'true')
        self.assertEqual(self.session.headers['Accept'], 'application/json')
        self.assertEqual(self.session.headers['Content-Type'], 'application/json')
        self.assertTrue(self.session.headers['User-Agent'].startswith('token-receipt-printer/'))

    def test_requires_base_url(self):
        with self.assertRaises(ValueError):
            QueueClient('', session=self.session)

    def test_fetch_pending_in_server_order(self):
        self.session.request.return_value = make_response(payload={
            'status': 'success',
            'pendingItems': 2,
            'items': [
                {'id': 'b', 'transactionHash': '0x2', 'amount': '1', 'token': 'T'},
                {'id': 'a', 'transactionHash': '0x1', 'amount': 5, 'productName': '☕ LATTE'},
            ],
        })
        jobs = self.client.fetch_pending()
        self.assertEqual([job.id for job in jobs], ['b', 'a'])
        self.assertEqual(jobs[1].amount_raw, '5')
        self.assertEqual(jobs[1].product_name, 'LATTE')
        self.session.request.assert_called_once_with(
            'GET', 'https://queue.example.com/api/receipt/queue', timeout=(10.0, 15.0))

    def test_fetch_pending_empty_cases(self):
        for payload in ({'status': 'error', 'pendingItems': 3, 'items': [{'id': 'x'}]},
                        {'status': 'success', 'pendingItems': 0, 'items': [{'id': 'x'}]},
                        {'status': 'success'}):
            with self.subTest(payload=payload):
                self.session.request.return_value = make_response(payload=payload)
                self.assertEqual(self.client.fetch_pending(), [])

    def test_fetch_pending_skips_malformed_items(self):
        self.session.request.return_value = make_response(payload={
            'status': 'success', 'pendingItems': 3,
            'items': [{'amount': '1'}, 'junk', {'id': 'ok'}],
        })
        self.assertEqual([job.id for job in self.client.fetch_pending()], ['ok'])

    def test_http_error_is_server_error(self):
        self.session.request.return_value = make_response(status_code=502, text='Bad gateway')
        with self.assertRaises(ServerError) as ctx:
            self.client.fetch_pending()
        self.assertEqual(ctx.exception.status_code, 502)

    def test_non_json_is_server_error(self):
        self.session.request.return_value = make_response(
            payload=ValueError('Expecting value'), text='<html>ngrok</html>')
        with self.assertRaises(ServerError):
            self.client.fetch_pending()

    def test_transport_errors_are_network_errors(self):
        for exc in (requests.exceptions.ConnectionError('refused'),
                    requests.exceptions.Timeout('slow'),
                    requests.exceptions.RequestException('other')):
            with self.subTest(exc=exc):
                self.session.request.side_effect = exc
                with self.assertRaises(NetworkError):
                    self.client.fetch_pending()

    def test_report_status_body(self):
        self.session.request.return_value = make_response(payload={'status': 'success'})
        self.client.report_status('42', JobStatus.PRINTING)
        self.session.request.assert_called_with(
            'POST', 'https://queue.example.com/api/receipt/status', timeout=(10.0, 15.0),
            json={'printId': '42', 'status': 'printing'})

        self.client.report_status('42', JobStatus.FAILED, 'paper out')
        self.session.request.assert_called_with(
            'POST', 'https://queue.example.com/api/receipt/status', timeout=(10.0, 15.0),
            json={'printId': '42', 'status': 'failed', 'errorMessage': 'paper out'})

    def test_report_status_rejected(self):
        self.session.request.return_value = make_response(status_code=404)
        with self.assertRaises(ServerError):
            self.client.report_status('42', JobStatus.COMPLETED)

    def test_check_connection(self):
        self.session.request.return_value = make_response(payload={})
        self.assertTrue(self.client.check_connection())
        self.session.request.assert_called_with(
            'GET', 'https://queue.example.com/api/receipt/stats', timeout=PROBE_TIMEOUTS)

        self.session.request.return_value = make_response(status_code=500)
        self.assertFalse(self.client.check_connection())

        self.session.request.side_effect = requests.exceptions.ConnectionError('down')
        self.assertFalse(self.client.check_connection())


if __name__ == '__main__':
    unittest.main()
