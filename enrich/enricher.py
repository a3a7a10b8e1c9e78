"""
Enrichment driver: decides per issue whether to reuse, generate or skip a summary, and applies it.
"""
import logging
from typing import Dict, List, Optional
from errors import EnrichmentFailure
from normalize.models import Issue
from storage.cache import EnrichmentCache, CacheRecord
from .fingerprint import fingerprint, batch_fingerprint, decide, prior_matches, is_enrichment_eligible, REUSE, ENRICH, SKIP

logger = logging.getLogger(__name__)

REUSED = 'reused'
ENRICHED = 'enriched'
SKIPPED = 'skipped'
FAILED = 'failed'


class PlanEntry:
    def __init__(self, decision: str, fingerprint: str, prior: Optional[CacheRecord]):
        self.decision = decision
        self.fingerprint = fingerprint
        self.prior = prior


class EnrichmentPlan:
    def __init__(self, entries: Dict[str, PlanEntry], batch_fingerprint: str, batch_unchanged: bool):
        self.entries = entries
        self.batch_fingerprint = batch_fingerprint
        self.batch_unchanged = batch_unchanged

    def __getitem__(self, key: str) -> PlanEntry:
        return self.entries[key]


class Enricher:
    """
    Wraps the text-generation collaborator with the enrichment cache.

    The batch tier compares the aggregate fingerprint with the one stored after the last
    complete run. The cache drops that stored value on every per-issue write, so a match
    means every recorded per-issue fingerprint is still current and the per-issue
    comparisons can be skipped without changing any decision.

    A recorded fingerprint always names the content its summary was generated from. When a
    run carries an older summary forward over changed content, the old fingerprint is kept
    and the batch fingerprint is not stored for that run.
    """

    def __init__(self, summarizer, cache: EnrichmentCache):
        self.summarizer = summarizer
        self.cache = cache
        self._behind = 0

    def prior_for(self, issue: Issue, stored: Optional[Issue] = None) -> Optional[CacheRecord]:
        """Cached record for the issue, else one rebuilt from the stored document."""
        record = self.cache.get(issue.key)
        if record is not None:
            return record
        if stored is None or stored.summary is None:
            return None
        # a summary of unknown origin never matches, so eligible content is summarized again
        return CacheRecord(stored.summary_fingerprint or '', stored.summary)

    def plan(self, issues: List[Issue], priors: Dict[str, Optional[CacheRecord]]) -> EnrichmentPlan:
        self._behind = 0
        fingerprints = [fingerprint(i) for i in issues]
        aggregate = batch_fingerprint(fingerprints)
        batch_unchanged = bool(issues) and aggregate == self.cache.get_batch_fingerprint()
        if batch_unchanged:
            logger.info("No content changes across %d issues; reusing cached enrichment", len(issues))
        entries: Dict[str, PlanEntry] = {}
        for issue, fp in zip(issues, fingerprints):
            prior = priors.get(issue.key)
            if prior is None:
                unchanged = False
            elif batch_unchanged:
                unchanged = True
            else:
                unchanged = prior_matches(prior.fingerprint, fp)
            has_summary = prior is not None and prior.summary is not None
            entries[issue.key] = PlanEntry(decide(has_summary, unchanged, is_enrichment_eligible(issue)), fp, prior)
        return EnrichmentPlan(entries, aggregate, batch_unchanged)

    def apply(self, issue: Issue, entry: PlanEntry) -> str:
        """Set issue.summary according to the plan entry. Generation errors are logged, never raised."""
        if entry.decision == REUSE:
            issue.summary = entry.prior.summary
            issue.summary_fingerprint = entry.fingerprint
            logger.info("Skipped summarization for issue #%s (unchanged)", issue.number)
            return REUSED
        if entry.decision == SKIP or self.summarizer is None:
            self._carry_forward(issue, entry)
            return SKIPPED
        try:
            issue.summary = self.summarizer.summarize(issue.title, issue.body, [c.body for c in issue.comments_detail])
        except EnrichmentFailure as ex:
            logger.error("Error summarizing issue %s: %s", issue.key, ex)
            self._carry_forward(issue, entry)
            return FAILED
        issue.summary_fingerprint = entry.fingerprint
        logger.info("Summarized issue #%s", issue.number)
        return ENRICHED

    @staticmethod
    def _carry_forward(issue: Issue, entry: PlanEntry):
        if entry.prior is None or entry.prior.summary is None:
            issue.summary = None
            issue.summary_fingerprint = None
        else:
            issue.summary = entry.prior.summary
            issue.summary_fingerprint = entry.prior.fingerprint

    def record(self, issue: Issue, entry: PlanEntry, outcome: str):
        """Remember what this run saw. A failed generation keeps the old record so the next run retries."""
        if outcome == FAILED:
            return
        source = entry.fingerprint if issue.summary is None else (issue.summary_fingerprint or '')
        if source != entry.fingerprint:
            self._behind += 1
        self.cache.set(issue.key, source, issue.summary)

    def finish(self, plan: EnrichmentPlan):
        """Mark the run complete so the next run may take the batch shortcut."""
        if self._behind:
            logger.info("%d issue(s) keep a summary of older content; batch fingerprint not stored", self._behind)
            return
        self.cache.set_batch_fingerprint(plan.batch_fingerprint)


__all__ = ["Enricher", "EnrichmentPlan", "PlanEntry", "REUSED", "ENRICHED", "SKIPPED", "FAILED", "ENRICH"]
