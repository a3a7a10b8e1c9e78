import unittest
from correlate import find_issue_references, link_related_issues
from fakes import make_issue


class TestLinker(unittest.TestCase):
    def test_find_references(self):
        text = "Duplicate of #12, see also #7 and #12 again"
        self.assertEqual(find_issue_references(text), [12, 7, 12])

    def test_ignores_non_references(self):
        text = "Color &#39; entity, abc#5, https://example.com/page/#3 and issue#4"
        self.assertEqual(find_issue_references(text), [])

    def test_link_related_issues(self):
        issue = make_issue(1, 'title', 'Same as #2 and #3', ['yes, #2', 'refers to #1 itself', 'and #999 elsewhere'])
        related = link_related_issues(issue, {1, 2, 3})
        self.assertEqual([(r.number, r.similarity, r.relation_type) for r in related],
                         [(2, 0.667, 'reference'), (3, 0.333, 'reference')])

    def test_ties_keep_first_seen_order(self):
        issue = make_issue(1, 'title', '#5 then #4')
        self.assertEqual([r.number for r in link_related_issues(issue, {4, 5})], [5, 4])

    def test_no_references(self):
        self.assertEqual(link_related_issues(make_issue(1, 'title', 'nothing here'), {1, 2}), [])


if __name__ == '__main__':
    unittest.main()
