"""
GitHub issue ingestion client.
Pages through issues and comments of one repository while honoring the API's rate-limit signals.
"""
import logging
import time
from typing import List, Dict, Any, Optional, Callable
import requests
from errors import RateLimitExceeded, RemoteFetchError
from storage.retry import RateLimitGate, is_quota_exhausted, QUOTA_EXHAUSTED_WAIT_SECONDS

logger = logging.getLogger(__name__)

DEFAULT_PER_PAGE = 100
DEFAULT_TIMEOUT = 30


class GitHubClient:
    """Fetch issues and comments for `owner/name`, with bounded rate-limit retries.

    The session, rate-limit gate, clock and sleep are injectable so the client can be
    shared by a worker pool (one gate for all workers) and driven by fakes in tests.
    """

    def __init__(
        self,
        token: str,
        repo: str,
        base_url: str = None,
        session: Optional[requests.Session] = None,
        gate: Optional[RateLimitGate] = None,
        page_delay: float = 1.0,
        comment_page_delay: float = 0.05,
        max_attempts: int = 5,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.token = token
        self.repo = repo
        self.base_url = (base_url or "https://api.github.com").rstrip('/')
        self.headers = {
            "Authorization": f"Bearer {self.token}" if self.token else "",
            "Accept": "application/vnd.github+json",
        }
        self.session = session or requests.Session()
        self.sleep = sleep
        self.gate = gate or RateLimitGate(sleep=sleep)
        self.page_delay = page_delay
        self.comment_page_delay = comment_page_delay
        self.max_attempts = max(1, int(max_attempts))

    def _get(self, path: str, params: Dict[str, Any]) -> Any:
        url = f"{self.base_url}{path}"
        for attempt in range(1, self.max_attempts + 1):
            self.gate.wait()
            try:
                resp = self.session.get(url, headers=self.headers, params=params, timeout=DEFAULT_TIMEOUT)
            except requests.RequestException as ex:
                raise RemoteFetchError(f"Request failed: {ex}", url=url) from ex

            if is_quota_exhausted(resp):
                logger.warning("Rate limit exceeded for %s (attempt %d/%d); waiting %.0fs", url, attempt, self.max_attempts, QUOTA_EXHAUSTED_WAIT_SECONDS)
                self.gate.observe(resp)
                if attempt < self.max_attempts:
                    self.gate.block_for(QUOTA_EXHAUSTED_WAIT_SECONDS)
                continue

            self.gate.observe(resp)
            status = getattr(resp, 'status_code', 0)
            if status != 200:
                raise RemoteFetchError(f"Unexpected response: {getattr(resp, 'text', '')[:200]}", status=status, url=url)
            try:
                return resp.json()
            except ValueError as ex:
                raise RemoteFetchError("Response was not valid JSON", status=status, url=url) from ex
        raise RateLimitExceeded(self.max_attempts, url=url, reset_at=self.gate.reset_at)

    def fetch_page(self, page: int = 1, per_page: int = DEFAULT_PER_PAGE) -> List[Dict[str, Any]]:
        """One page of issues in all states, most recently updated first."""
        params = {"state": "all", "sort": "updated", "direction": "desc", "page": page, "per_page": per_page}
        data = self._get(f"/repos/{self.repo}/issues", params)
        return data if isinstance(data, list) else []

    def fetch_all_comments(self, issue_number: int, per_page: int = DEFAULT_PER_PAGE) -> List[Dict[str, Any]]:
        """Every comment on an issue; pages until an empty page comes back."""
        comments: List[Dict[str, Any]] = []
        page = 1
        while True:
            params = {"page": page, "per_page": per_page}
            data = self._get(f"/repos/{self.repo}/issues/{issue_number}/comments", params)
            if not data:
                break
            comments.extend(data)
            page += 1
            self.sleep(self.comment_page_delay)
        return comments

    def pause(self):
        """Fixed delay between issue pages to stay under burst limits."""
        self.sleep(self.page_delay)
