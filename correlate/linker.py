"""
Linker heuristics relating issues to each other.
Simple, dependency-free heuristics:
- '#123' references in the body or comment bodies
- only references to issues known to the store/run count
"""
import re
from typing import Dict, Iterable, List
from normalize.models import Issue, RelatedIssue

REFERENCE_PATTERN = re.compile(r"(?<![\w/&])#(\d+)\b")
RELATION_REFERENCE = 'reference'


def find_issue_references(text: str) -> List[int]:
    """Issue numbers referenced as '#N', in order of appearance (repeats kept)."""
    if not text:
        return []
    return [int(m.group(1)) for m in REFERENCE_PATTERN.finditer(text)]


# helper: textual fields of an issue that may reference other issues
def collect_text_fields(issue: Issue) -> List[str]:
    return [t for t in [issue.body] + [c.body for c in issue.comments_detail] if t]


def count_references(texts: Iterable[str], known_numbers: set, own_number: int) -> Dict[int, int]:
    counts: Dict[int, int] = {}
    for txt in texts:
        for n in find_issue_references(txt):
            if n == own_number or n not in known_numbers:
                continue
            counts[n] = counts.get(n, 0) + 1
    return counts


def link_related_issues(issue: Issue, known_numbers: set) -> List[RelatedIssue]:
    """
    Related issues ranked by how often they are referenced.

    similarity is the share of all counted references; ties keep first-seen order.
    """
    counts = count_references(collect_text_fields(issue), known_numbers, issue.number)
    if not counts:
        return []
    total = sum(counts.values())
    ranked = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)
    return [RelatedIssue(number=n, similarity=round(c / total, 3), relation_type=RELATION_REFERENCE) for n, c in ranked]
