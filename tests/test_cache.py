import unittest
import tempfile
import os

from normalize.models import Summary
from storage.cache import EnrichmentCache


class TestCacheBehavior(unittest.TestCase):
    def test_cache_set_get(self):
        tmp = tempfile.NamedTemporaryFile(delete=False)
        path = tmp.name
        tmp.close()
        try:
            cache = EnrichmentCache(path)
            summary = Summary('短い', '全文', '技術', '一般', '2025-01-31T00:00:00Z')
            cache.set('acme/widgets#1', 'fp1', summary)
            record = cache.get('acme/widgets#1')
            self.assertIsNotNone(record)
            self.assertEqual(record.fingerprint, 'fp1')
            self.assertEqual(record.summary, summary)
            self.assertIsNotNone(record.timestamp)
            cache.close()

            # values survive reopening the file
            reopened = EnrichmentCache(path)
            self.assertEqual(reopened.get('acme/widgets#1').summary, summary)
            reopened.close()
        finally:
            try:
                os.remove(path)
            except OSError:
                pass

    def test_missing_key_and_empty_summary(self):
        with EnrichmentCache() as cache:
            self.assertIsNone(cache.get('nope'))
            cache.set('k', 'fp', None)
            self.assertIsNone(cache.get('k').summary)

    def test_stats_and_list_keys(self):
        with EnrichmentCache() as cache:
            cache.set('a', 'fp-a', Summary('s', 'f', 't', 'g', 'x'))
            cache.set('b', 'fp-b', None)
            stats = cache.stats()
            self.assertEqual(stats['count'], 2)
            self.assertEqual(stats['with_summary'], 1)
            self.assertIsNone(stats['batch_fingerprint'])
            keys = {item['key']: item for item in cache.list_keys()}
            self.assertEqual(set(keys), {'a', 'b'})
            self.assertTrue(keys['a']['has_summary'])
            self.assertFalse(keys['b']['has_summary'])

    def test_delete_key_and_clear(self):
        with EnrichmentCache() as cache:
            cache.set('a', 'fp-a', None)
            cache.set('b', 'fp-b', None)
            cache.set_batch_fingerprint('batch')
            self.assertEqual(cache.delete_key('a'), 1)
            self.assertEqual(cache.delete_key('a'), 0)
            self.assertIsNone(cache.get_batch_fingerprint())
            cache.set_batch_fingerprint('batch')
            cache.clear()
            self.assertEqual(cache.stats()['count'], 0)
            self.assertIsNone(cache.get_batch_fingerprint())

    def test_batch_fingerprint_invalidated_by_set(self):
        with EnrichmentCache() as cache:
            cache.set_batch_fingerprint('batch')
            self.assertEqual(cache.get_batch_fingerprint(), 'batch')
            cache.set('a', 'fp-a', None)
            self.assertIsNone(cache.get_batch_fingerprint())


if __name__ == '__main__':
    unittest.main()
