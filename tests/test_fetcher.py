import unittest
import requests

from errors import RateLimitExceeded, RemoteFetchError
from ingest.github import GitHubClient
from storage.retry import RateLimitGate
from fakes import FakeResponse, FakeSession, ManualClock


def _client(session, clock, max_attempts=5):
    gate = RateLimitGate(clock=clock.time, sleep=clock.sleep)
    return GitHubClient('tok', 'acme/widgets', session=session, gate=gate, max_attempts=max_attempts, sleep=clock.sleep)


def _ok(data, remaining=4000, reset=None):
    headers = {'X-RateLimit-Remaining': str(remaining)}
    if reset is not None:
        headers['X-RateLimit-Reset'] = str(reset)
    return FakeResponse(200, data, headers=headers)


RATE_LIMITED = FakeResponse(403, None, text='API rate limit exceeded for user.', headers={'X-RateLimit-Remaining': '0'})


class TestRateLimitGate(unittest.TestCase):
    def test_low_quota_suspends_until_reset_plus_buffer(self):
        clock = ManualClock(start=1000.0)
        session = FakeSession([_ok([{'number': 1}], remaining=2, reset=1005), _ok([])])
        client = _client(session, clock)

        self.assertEqual(client.fetch_page(1), [{'number': 1}])
        self.assertEqual(clock.sleeps, [])
        client.fetch_page(2)
        self.assertEqual(len(clock.sleeps), 1)
        self.assertAlmostEqual(clock.sleeps[0], 6.0)
        self.assertEqual(len(session.calls), 2)

    def test_low_quota_logs_warning_without_waiting(self):
        clock = ManualClock()
        session = FakeSession([_ok([], remaining=7, reset=2000), _ok([])])
        client = _client(session, clock)
        with self.assertLogs('storage.retry', level='WARNING') as logs:
            client.fetch_page(1)
        self.assertTrue(any('7 requests remaining' in m for m in logs.output))
        client.fetch_page(2)
        self.assertEqual(clock.sleeps, [])

    def test_gate_is_shared_between_clients(self):
        clock = ManualClock(start=0.0)
        gate = RateLimitGate(clock=clock.time, sleep=clock.sleep)
        gate.block_for(60)
        self.assertAlmostEqual(gate.wait(), 60.0)
        # the clock moved past the reopen time, so the next caller does not wait
        self.assertEqual(gate.wait(), 0.0)


class TestGitHubClient(unittest.TestCase):
    def test_quota_exhausted_waits_sixty_seconds_and_retries(self):
        clock = ManualClock()
        session = FakeSession([RATE_LIMITED, _ok([{'number': 5}])])
        client = _client(session, clock)
        self.assertEqual(client.fetch_page(1), [{'number': 5}])
        self.assertEqual(clock.sleeps, [60.0])
        self.assertEqual(len(session.calls), 2)
        # the retried request is identical
        self.assertEqual(session.calls[0][2]['params'], session.calls[1][2]['params'])

    def test_quota_exhausted_gives_up_after_max_attempts(self):
        clock = ManualClock()
        session = FakeSession([RATE_LIMITED, RATE_LIMITED, RATE_LIMITED])
        client = _client(session, clock, max_attempts=3)
        with self.assertRaises(RateLimitExceeded) as ctx:
            client.fetch_page(1)
        self.assertEqual(ctx.exception.attempts, 3)
        self.assertEqual(len(session.calls), 3)
        self.assertEqual(clock.sleeps, [60.0, 60.0])

    def test_server_error_is_remote_fetch_error(self):
        session = FakeSession([FakeResponse(502, None, text='Bad gateway')])
        client = _client(session, ManualClock())
        with self.assertRaises(RemoteFetchError) as ctx:
            client.fetch_page(1)
        self.assertEqual(ctx.exception.status, 502)

    def test_plain_403_is_not_treated_as_rate_limit(self):
        session = FakeSession([FakeResponse(403, None, text='Resource not accessible by integration')])
        client = _client(session, ManualClock())
        with self.assertRaises(RemoteFetchError):
            client.fetch_page(1)
        self.assertEqual(len(session.calls), 1)

    def test_transport_error_is_remote_fetch_error(self):
        session = FakeSession([requests.ConnectionError('connection reset')])
        client = _client(session, ManualClock())
        with self.assertRaises(RemoteFetchError):
            client.fetch_all_comments(3)

    def test_fetch_page_requests_all_states_most_recent_first(self):
        session = FakeSession([_ok([])])
        client = _client(session, ManualClock())
        client.fetch_page(3, per_page=50)
        method, url, kwargs = session.calls[0]
        self.assertTrue(url.endswith('/repos/acme/widgets/issues'))
        self.assertEqual(kwargs['params'], {'state': 'all', 'sort': 'updated', 'direction': 'desc', 'page': 3, 'per_page': 50})
        self.assertEqual(kwargs['headers']['Authorization'], 'Bearer tok')

    def test_fetch_all_comments_pages_until_empty(self):
        clock = ManualClock()
        session = FakeSession([_ok([{'id': 1}, {'id': 2}]), _ok([{'id': 3}]), _ok([])])
        client = _client(session, clock)
        comments = client.fetch_all_comments(9)
        self.assertEqual([c['id'] for c in comments], [1, 2, 3])
        self.assertEqual([c[2]['params']['page'] for c in session.calls], [1, 2, 3])
        self.assertEqual(clock.sleeps, [0.05, 0.05])

    def test_pause_sleeps_page_delay(self):
        clock = ManualClock()
        client = _client(FakeSession([]), clock)
        client.pause()
        self.assertEqual(clock.sleeps, [1.0])


if __name__ == '__main__':
    unittest.main()
