"""
Change detection for enrichment.
One canonical fingerprint function feeds both the whole-batch comparison and the per-issue decision.
"""
import hashlib
import json
import re
from typing import Iterable, Optional
from normalize.models import Issue

LATIN_LETTER = re.compile(r'[A-Za-z]')
NON_ASCII = re.compile(r'[^\x00-\x7F]')

REUSE = 'reuse'
ENRICH = 'enrich'
SKIP = 'skip'


def is_foreign_language(text: str) -> bool:
    """True when Latin letters strictly outnumber non-ASCII code points. Empty text is never eligible."""
    if not text:
        return False
    return len(LATIN_LETTER.findall(text)) > len(NON_ASCII.findall(text))


def is_enrichment_eligible(issue: Issue) -> bool:
    return is_foreign_language(f"{issue.title or ''} {issue.body or ''}")


def _canonical_core(issue: Issue) -> str:
    core = {
        'number': issue.number,
        'title': issue.title,
        'body': issue.body,
        'comments': [c.body for c in issue.comments_detail],
    }
    return json.dumps(core, ensure_ascii=False, sort_keys=True, separators=(',', ':'))


def fingerprint(issue: Issue) -> str:
    """SHA-256 over number, title, body and the comment bodies in order."""
    return hashlib.sha256(_canonical_core(issue).encode('utf-8')).hexdigest()


def batch_fingerprint(fingerprints: Iterable[str]) -> str:
    """Aggregate of per-issue fingerprints, sensitive to issue order."""
    h = hashlib.sha256()
    for fp in fingerprints:
        h.update(fp.encode('ascii'))
        h.update(b'\n')
    return h.hexdigest()


def decide(has_prior_summary: bool, fingerprint_unchanged: bool, eligible: bool) -> str:
    """
    Decision table:
      prior summary + unchanged fingerprint -> REUSE the prior summary verbatim
      otherwise, eligible text               -> ENRICH
      otherwise                              -> SKIP (no generation call)
    A missing prior record is the same as "changed and no summary".
    """
    if fingerprint_unchanged and has_prior_summary:
        return REUSE
    if eligible:
        return ENRICH
    return SKIP


def prior_matches(prior_fingerprint: Optional[str], current: str) -> bool:
    return prior_fingerprint is not None and prior_fingerprint == current
