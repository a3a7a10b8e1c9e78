"""
Sync pipeline: fetch -> transform -> score -> diff -> enrich-if-needed -> persist.
"""
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from correlate.linker import link_related_issues
from enrich.enricher import ENRICHED, REUSED, FAILED as ENRICH_FAILED
from errors import RateLimitExceeded, RemoteFetchError, TransientStorageError
from normalize.models import Issue
from normalize.util import transform_issue
from scoring.metrics import activity_score, build_history_entry, compute_engagement_metrics
from scoring.utils import utc_now
from storage.retry import call_with_retry
from storage.store import IssueStore

logger = logging.getLogger(__name__)

START = 'start'
PAGINATING = 'paginating'
TRANSFORMING = 'transforming'
DIFFING = 'diffing'
ENRICHING = 'enriching'
PERSISTING = 'persisting'
DONE = 'done'
FAILED = 'failed'
CANCELLED = 'cancelled'


class SyncReport:
    """Outcome of one sync run, with per-stage counters for logging and the CLI."""

    def __init__(self):
        self.state = START
        self.failed_stage: Optional[str] = None
        self.error: Optional[str] = None
        self.pages = 0
        self.issues_fetched = 0
        self.issues_created = 0
        self.issues_updated = 0
        self.enriched = 0
        self.reused = 0
        self.skipped = 0
        self.enrichment_failures = 0
        self.persist_failures = 0
        self.batch_unchanged = False
        self.duration_seconds = 0.0
        self.error_details: List[str] = []

    @property
    def persisted(self) -> int:
        return self.issues_created + self.issues_updated

    @property
    def ok(self) -> bool:
        return self.state == DONE and self.persist_failures == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'state': self.state,
            'failed_stage': self.failed_stage,
            'error': self.error,
            'pages': self.pages,
            'issues_fetched': self.issues_fetched,
            'issues_created': self.issues_created,
            'issues_updated': self.issues_updated,
            'enriched': self.enriched,
            'reused': self.reused,
            'skipped': self.skipped,
            'enrichment_failures': self.enrichment_failures,
            'persist_failures': self.persist_failures,
            'batch_unchanged': self.batch_unchanged,
            'duration_seconds': round(self.duration_seconds, 2),
            'error_details': list(self.error_details),
        }


class SyncOrchestrator:
    """
    Drives one sync run for one repository.

    At most one orchestrator may run per repository at a time; scheduling is the caller's job.
    Comment fetching fans out over a bounded thread pool that shares the client's rate-limit gate.
    """

    def __init__(
        self,
        client,
        store: IssueStore,
        repo: str,
        enricher=None,
        per_page: int = 100,
        comment_workers: int = 4,
        storage_retry_attempts: int = 3,
        storage_retry_delay: float = 5.0,
        weights: Optional[Dict[str, float]] = None,
        now: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.store = store
        self.repo = repo
        self.enricher = enricher
        self.per_page = per_page
        self.comment_workers = max(1, int(comment_workers))
        self.storage_retry_attempts = storage_retry_attempts
        self.storage_retry_delay = storage_retry_delay
        self.weights = weights
        self.now = now
        self.sleep = sleep
        self.state = START
        self._cancel = threading.Event()

    def cancel(self):
        """Stop after the issue currently being processed; nothing is written for later issues."""
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def _enter(self, state: str):
        self.state = state
        logger.debug("Sync state -> %s", state)

    def run(self) -> SyncReport:
        started = time.monotonic()
        report = SyncReport()
        run_at = self.now()
        logger.info("Starting issue sync for %s", self.repo)
        try:
            raw_issues = self._paginate(report)
            if not self._stopped(report):
                issues = self._transform(raw_issues, run_at)
                if not self._stopped(report):
                    self._enrich_and_persist(issues, run_at, report)
        except (RemoteFetchError, RateLimitExceeded) as ex:
            report.state = FAILED
            report.failed_stage = self.state
            report.error = str(ex)
            logger.error("Sync of %s failed during %s: %s", self.repo, self.state, ex)
            self.state = FAILED
        report.duration_seconds = time.monotonic() - started
        logger.info(
            "Sync %s: %d fetched, %d created, %d updated, %d enriched, %d reused, %d enrichment failures, %d persist failures in %.1fs",
            report.state, report.issues_fetched, report.issues_created, report.issues_updated, report.enriched,
            report.reused, report.enrichment_failures, report.persist_failures, report.duration_seconds,
        )
        return report

    def _stopped(self, report: SyncReport) -> bool:
        if not self._cancel.is_set():
            return False
        logger.info("Sync of %s cancelled during %s", self.repo, self.state)
        report.state = CANCELLED
        self.state = CANCELLED
        return True

    def _paginate(self, report: SyncReport) -> List[Dict[str, Any]]:
        self._enter(PAGINATING)
        raw_issues: List[Dict[str, Any]] = []
        page = 1
        while not self._cancel.is_set():
            logger.info("Fetching page %d...", page)
            batch = self.client.fetch_page(page, self.per_page)
            if not batch:
                logger.info("No more issues to fetch.")
                break
            logger.info("Fetched %d issues from page %d", len(batch), page)
            raw_issues.extend(batch)
            report.pages = page
            page += 1
            self.client.pause()
        report.issues_fetched = len(raw_issues)
        return raw_issues

    def _comments_for(self, raw_issue: Dict[str, Any]) -> List[Dict[str, Any]]:
        if self._cancel.is_set() or not raw_issue.get('comments'):
            return []
        return self.client.fetch_all_comments(raw_issue['number'])

    def _transform(self, raw_issues: List[Dict[str, Any]], run_at: datetime) -> List[Issue]:
        self._enter(TRANSFORMING)
        issues: List[Issue] = []
        known_numbers = {int(r.get('number') or 0) for r in raw_issues}
        pool = ThreadPoolExecutor(max_workers=self.comment_workers)
        try:
            futures = [pool.submit(self._comments_for, raw) for raw in raw_issues]
            for raw, future in zip(raw_issues, futures):
                if self._cancel.is_set():
                    break
                issue = transform_issue(raw, future.result(), self.repo)
                issue.activity_score = activity_score(issue, now=run_at, weights=self.weights)
                issue.engagement_metrics = compute_engagement_metrics(issue)
                issue.related_issues = link_related_issues(issue, known_numbers)
                issues.append(issue)
        finally:
            pool.shutdown(wait=True, cancel_futures=True)
        return issues

    def _diff_inputs(self, issues: List[Issue]) -> Dict[str, Issue]:
        self._enter(DIFFING)
        stored: Dict[str, Issue] = {}
        for issue in issues:
            existing = self.store.get(issue.repo, issue.number)
            if existing is not None:
                stored[issue.key] = existing
        return stored

    def _enrich_and_persist(self, issues: List[Issue], run_at: datetime, report: SyncReport):
        stored = self._diff_inputs(issues)
        plan = None
        if self.enricher is not None:
            priors = {i.key: self.enricher.prior_for(i, stored.get(i.key)) for i in issues}
            plan = self.enricher.plan(issues, priors)
            report.batch_unchanged = plan.batch_unchanged
        self._process(issues, stored, plan, run_at, report)

    def _process(self, issues: List[Issue], stored: Dict[str, Issue], plan, run_at: datetime, report: SyncReport):
        total = len(issues)
        for idx, issue in enumerate(issues, 1):
            if self._stopped(report):
                return
            logger.info("[%d/%d - %.2f%%] Processing issue #%s: %s", idx, total, idx * 100.0 / total, issue.number, issue.title)
            existing = stored.get(issue.key)

            self._enter(ENRICHING)
            outcome = None
            if plan is not None:
                outcome = self.enricher.apply(issue, plan[issue.key])
                self._count_outcome(report, outcome, issue)
            else:
                issue.summary = existing.summary if existing else None
                issue.summary_fingerprint = existing.summary_fingerprint if existing else None

            self._enter(PERSISTING)
            if existing is not None:
                issue.priority_score = existing.priority_score
                issue.implementation_status = existing.implementation_status
            issue.history = (existing.history if existing else []) + [build_history_entry(issue, run_at)]
            try:
                created = call_with_retry(
                    lambda: self.store.upsert(issue),
                    retry_on=(TransientStorageError,),
                    attempts=self.storage_retry_attempts,
                    delay=self.storage_retry_delay,
                    sleep=self.sleep,
                    description=f"upsert of {issue.key}",
                )
            except TransientStorageError as ex:
                logger.error("Failed to persist issue %s during %s: %s", issue.key, PERSISTING, ex)
                report.persist_failures += 1
                report.error_details.append(f"{issue.key}: {ex}")
                continue
            if created:
                report.issues_created += 1
            else:
                report.issues_updated += 1
            if plan is not None:
                self.enricher.record(issue, plan[issue.key], outcome)

        if plan is not None and report.enrichment_failures == 0 and report.persist_failures == 0:
            self.enricher.finish(plan)
        report.state = DONE
        self._enter(DONE)

    @staticmethod
    def _count_outcome(report: SyncReport, outcome: str, issue: Issue):
        if outcome == REUSED:
            report.reused += 1
        elif outcome == ENRICHED:
            report.enriched += 1
        elif outcome == ENRICH_FAILED:
            report.enrichment_failures += 1
            report.error_details.append(f"{issue.key}: enrichment failed")
        else:
            report.skipped += 1
