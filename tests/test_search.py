import unittest
from unittest.mock import patch

from errors import InvalidQuery
from search.engine import HybridSearchEngine, min_edit_distance
from storage.store import IssueStore
from fakes import make_issue


class TestHybridSearch(unittest.TestCase):
    def setUp(self):
        ticks = iter(range(10000))
        self.store = IssueStore(clock=lambda: float(next(ticks)))
        self.engine = HybridSearchEngine(self.store)

    def tearDown(self):
        self.store.close()

    def test_approximate_match_when_no_exact_hit(self):
        self.store.upsert(make_issue(1, 'aaaaaaaaab'))
        self.store.upsert(make_issue(2, 'completely different words'))
        hits = self.engine.search_with_details('aaaaaaaaaa')
        self.assertEqual([h.issue.number for h in hits], [1])
        self.assertEqual(hits[0].match, 'approximate')
        self.assertEqual(hits[0].score, 1)

    def test_exact_hits_precede_approximate_and_are_not_duplicated(self):
        self.store.upsert(make_issue(1, 'crasj'))
        self.store.upsert(make_issue(2, 'crash'))
        hits = self.engine.search_with_details('crash')
        self.assertEqual([(h.issue.number, h.match) for h in hits], [(2, 'exact'), (1, 'approximate')])

    def test_approximate_pass_runs_below_threshold(self):
        self.store.upsert(make_issue(1, 'crash'))
        with patch.object(self.engine, '_approximate', wraps=self.engine._approximate) as approx:
            self.engine.search('crash')
        self.assertTrue(approx.called)

    def test_approximate_pass_skipped_with_enough_exact_hits(self):
        for n in range(12):
            self.store.upsert(make_issue(n, f'crash report {n}'))
        with patch.object(self.engine, '_approximate') as approx:
            results = self.engine.search('crash')
        self.assertFalse(approx.called)
        self.assertEqual(len(results), 12)

    def test_never_more_than_fifty_results(self):
        for n in range(60):
            self.store.upsert(make_issue(n, f'crash report {n}'))
        results = self.engine.search('crash')
        self.assertEqual(len(results), 50)
        self.assertEqual(len({i.number for i in results}), 50)

    def test_approximate_candidates_capped_and_stably_ordered(self):
        for n, suffix in enumerate('efghijklmnopqrs'):
            self.store.upsert(make_issue(n, 'abc' + suffix))
        hits = self.engine.search_with_details('abcd')
        self.assertEqual(len(hits), 10)
        self.assertTrue(all(h.score == 1 for h in hits))
        # equal distances keep retrieval order, newest indexed first
        self.assertEqual([h.issue.number for h in hits], list(range(14, 4, -1)))

    def test_closer_candidates_first(self):
        self.store.upsert(make_issue(1, 'abxyz'))
        self.store.upsert(make_issue(2, 'abcyz'))
        hits = self.engine.search_with_details('abcde')
        self.assertEqual([(h.issue.number, h.score) for h in hits], [(2, 2), (1, 3)])

    def test_matches_comment_text(self):
        self.store.upsert(make_issue(1, 'unrelated title', 'unrelated body', ['hello', 'world']))
        hits = self.engine.search_with_details('hello worlb')
        self.assertEqual([h.issue.number for h in hits], [1])

    def test_no_match_returns_empty_list(self):
        self.store.upsert(make_issue(1, 'crash on startup'))
        self.assertEqual(self.engine.search('zzzzzzzzzzzzzz'), [])

    def test_short_query_matches_issues_with_empty_text(self):
        # a query of max_distance characters or fewer is within range of any empty field
        self.store.upsert(make_issue(1, 'Unrelated title', ''))
        self.store.upsert(make_issue(2, 'Another title', 'a body long enough', ['and a comment']))
        hits = self.engine.search_with_details('xyz')
        self.assertEqual([(h.issue.number, h.match, h.score) for h in hits], [(1, 'approximate', 3)])

    def test_empty_query_rejected(self):
        for query in (None, '', '   '):
            with self.assertRaises(InvalidQuery):
                self.engine.search(query)


class TestEditDistance(unittest.TestCase):
    def test_minimum_over_fields(self):
        issue = make_issue(1, 'abcdef', 'abcxyz', ['zzz'])
        self.assertEqual(min_edit_distance('abcdeg', issue), 1)

    def test_distance_above_limit_is_capped(self):
        issue = make_issue(1, 'completely different', 'nothing alike here', ['nor in the comments'])
        self.assertEqual(min_edit_distance('abc', issue, max_distance=3), 4)


if __name__ == '__main__':
    unittest.main()
