import unittest
from datetime import datetime, timezone
from normalize.util import transform_issue
from scoring.metrics import (
    activity_score, age_term, recency_bonus, ranking_score, rank_issues,
    compute_engagement_metrics, build_history_entry,
)
from scoring.utils import load_weights, DEFAULT_WEIGHTS, isoformat, parse_timestamp
from fakes import FIXED_NOW, raw_issue, raw_comment, make_issue


def _scored_issue(**kwargs):
    raw = raw_issue(1, comments=2, reactions={'total_count': 4}, **kwargs)
    comments = [raw_comment(1, user='bob'), raw_comment(2, user='carol')]
    return transform_issue(raw, comments, 'acme/widgets')


class TestActivityScore(unittest.TestCase):
    def test_known_inputs(self):
        # age 10d -> 90, 2 comments -> 10, 4 reactions -> 12, 3 participants -> 30,
        # updated 1d ago -> 50, no replies, reply depth placeholder 1 -> 10
        issue = _scored_issue()
        self.assertEqual(activity_score(issue, now=FIXED_NOW), 202)

    def test_deterministic_for_same_now(self):
        issue = _scored_issue()
        self.assertEqual(activity_score(issue, now=FIXED_NOW), activity_score(issue, now=FIXED_NOW))

    def test_rounds_half_up(self):
        issue = _scored_issue(created_at='2025-01-20T12:00:00Z')
        self.assertEqual(activity_score(issue, now=FIXED_NOW), 202)

    def test_extra_signals(self):
        issue = _scored_issue()
        score = activity_score(issue, now=FIXED_NOW, extra={'total_replies': 2, 'reply_depth': 3, 'state_change_count': 1})
        self.assertEqual(score, 202 + 6 + 20 + 10)

    def test_custom_weights(self):
        issue = _scored_issue()
        weights = dict(DEFAULT_WEIGHTS, comment=0.0)
        self.assertEqual(activity_score(issue, now=FIXED_NOW, weights=weights), 192)

    def test_age_term_is_floored_at_zero(self):
        self.assertEqual(age_term('2020-01-01T00:00:00Z', FIXED_NOW), 0.0)
        self.assertEqual(age_term('', FIXED_NOW), 0.0)

    def test_recency_bonus_bands(self):
        self.assertEqual(recency_bonus('2025-01-25T00:00:00Z', FIXED_NOW), 50)
        self.assertEqual(recency_bonus('2025-01-10T00:00:00Z', FIXED_NOW), 25)
        self.assertEqual(recency_bonus('2024-12-01T00:00:00Z', FIXED_NOW), 0)


class TestRanking(unittest.TestCase):
    def test_priority_overrides_activity_without_overwriting_it(self):
        low = make_issue(1, activity_score=10, priority_score=500.0)
        high = make_issue(2, activity_score=300)
        self.assertEqual([i.number for i in rank_issues([high, low])], [1, 2])
        self.assertEqual(low.activity_score, 10)
        self.assertEqual(ranking_score(high), 300.0)

    def test_ties_keep_input_order(self):
        issues = [make_issue(n, activity_score=5) for n in (3, 1, 2)]
        self.assertEqual([i.number for i in rank_issues(issues)], [3, 1, 2])


class TestEngagementAndHistory(unittest.TestCase):
    def test_engagement_metrics(self):
        issue = transform_issue(
            raw_issue(1, created_at='2025-01-21T00:00:00Z'),
            [raw_comment(1, created_at='2025-01-21T02:00:00Z'), raw_comment(2, created_at='2025-01-21T04:00:00Z')],
            'acme/widgets',
        )
        metrics = compute_engagement_metrics(issue)
        self.assertEqual(metrics.reply_depth, 1)
        self.assertEqual(metrics.reply_breadth, 0)
        self.assertEqual(metrics.avg_reply_time, 3.0)

    def test_history_entry_snapshots_current_values(self):
        issue = _scored_issue()
        issue.activity_score = 202
        entry = build_history_entry(issue, FIXED_NOW)
        self.assertEqual(entry.date, '2025-01-31T00:00:00Z')
        self.assertEqual(entry.comments, 2)
        self.assertEqual(entry.reactions['total'], 4)
        self.assertEqual(entry.activity_score, 202)
        # the snapshot does not alias the live reaction dict
        issue.reactions['total'] = 99
        self.assertEqual(entry.reactions['total'], 4)


class TestScoringUtils(unittest.TestCase):
    def test_load_weights_defaults(self):
        weights = load_weights(path='/nonexistent/weights.yaml')
        self.assertEqual(weights, DEFAULT_WEIGHTS)

    def test_load_weights_from_yaml(self):
        import tempfile
        import os
        with tempfile.TemporaryDirectory() as d:
            path = os.path.join(d, 'w.yaml')
            with open(path, 'w', encoding='utf-8') as f:
                f.write('comment: 7\nunknown: 1\n')
            weights = load_weights(path)
        self.assertEqual(weights['comment'], 7.0)
        self.assertEqual(weights['reaction'], DEFAULT_WEIGHTS['reaction'])
        self.assertNotIn('unknown', weights)

    def test_bundled_weights_match_defaults(self):
        self.assertEqual(load_weights(), DEFAULT_WEIGHTS)

    def test_timestamps(self):
        dt = parse_timestamp('2025-01-31T00:00:00Z')
        self.assertEqual(dt, datetime(2025, 1, 31, tzinfo=timezone.utc))
        self.assertEqual(isoformat(dt), '2025-01-31T00:00:00Z')
        self.assertIsNone(parse_timestamp('not a date'))


if __name__ == '__main__':
    unittest.main()
