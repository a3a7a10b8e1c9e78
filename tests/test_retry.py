import unittest
from errors import TransientStorageError
from storage.retry import call_with_retry, parse_rate_headers, is_quota_exhausted
from fakes import FakeResponse


class TestCallWithRetry(unittest.TestCase):
    def test_succeeds_after_transient_failures(self):
        sleeps = []
        attempts = {'n': 0}

        def flaky():
            attempts['n'] += 1
            if attempts['n'] < 3:
                raise TransientStorageError('locked')
            return 'ok'

        self.assertEqual(call_with_retry(flaky, (TransientStorageError,), attempts=3, delay=5.0, sleep=sleeps.append), 'ok')
        self.assertEqual(sleeps, [5.0, 5.0])

    def test_reraises_after_last_attempt(self):
        sleeps = []

        def always():
            raise TransientStorageError('locked')

        with self.assertLogs('storage.retry', level='ERROR'):
            with self.assertRaises(TransientStorageError):
                call_with_retry(always, (TransientStorageError,), attempts=2, delay=1.0, sleep=sleeps.append, description='upsert')
        self.assertEqual(sleeps, [1.0])

    def test_other_errors_are_not_retried(self):
        sleeps = []

        def broken():
            raise KeyError('x')

        with self.assertRaises(KeyError):
            call_with_retry(broken, (TransientStorageError,), sleep=sleeps.append)
        self.assertEqual(sleeps, [])


class TestRateHeaders(unittest.TestCase):
    def test_parse_headers(self):
        resp = FakeResponse(headers={'X-RateLimit-Remaining': '12', 'X-RateLimit-Reset': '1700000000'})
        self.assertEqual(parse_rate_headers(resp), (12, 1700000000.0))

    def test_missing_or_garbage_headers(self):
        self.assertEqual(parse_rate_headers(FakeResponse()), (None, None))
        self.assertEqual(parse_rate_headers(FakeResponse(headers={'X-RateLimit-Remaining': 'lots'})), (None, None))

    def test_quota_exhausted_detection(self):
        self.assertTrue(is_quota_exhausted(FakeResponse(403, text='API rate limit exceeded')))
        self.assertFalse(is_quota_exhausted(FakeResponse(403, text='Forbidden')))
        self.assertFalse(is_quota_exhausted(FakeResponse(429, text='rate limit')))


if __name__ == '__main__':
    unittest.main()
