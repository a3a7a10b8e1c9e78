"""
Text-generation client producing Japanese summaries of an issue thread.
Talks to an OpenAI-compatible chat completions endpoint over requests.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional
import requests
from errors import EnrichmentFailure
from normalize.models import Summary, SUMMARY_REGISTERS
from scoring.utils import isoformat, utc_now

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_TIMEOUT = 60
MAX_COMMENT_CHARS = 6000

REGISTER_INSTRUCTIONS = {
    'short': "Summarize the GitHub issue below in Japanese as a single headline of at most 40 characters.",
    'full': "Summarize the GitHub issue below and its discussion in Japanese in a few paragraphs.",
    'technical': "Summarize the GitHub issue below in Japanese for developers, keeping technical details, reproduction steps and error messages.",
    'general': "Summarize the GitHub issue below in Japanese for non-technical users, in plain language.",
}


def _thread_text(title: str, body: str, comments: List[str]) -> str:
    joined = "\n---\n".join(c for c in comments if c)
    if len(joined) > MAX_COMMENT_CHARS:
        joined = joined[:MAX_COMMENT_CHARS]
    return f"Title: {title}\n\nBody:\n{body}\n\nComments:\n{joined}"


class OpenAISummarizer:
    """Generates the four summary registers in parallel (one request per register)."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        base_url: str = None,
        session: Optional[requests.Session] = None,
        max_workers: int = len(SUMMARY_REGISTERS),
        clock: Callable = utc_now,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip('/')
        self.session = session or requests.Session()
        self.max_workers = max(1, int(max_workers))
        self.clock = clock
        self.headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _complete(self, instruction: str, text: str) -> str:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": instruction},
                {"role": "user", "content": text},
            ],
            "temperature": 0.2,
        }
        resp = self.session.post(f"{self.base_url}/chat/completions", headers=self.headers, json=payload, timeout=DEFAULT_TIMEOUT)
        if resp.status_code != 200:
            raise EnrichmentFailure(f"text generation returned {resp.status_code}: {(resp.text or '')[:200]}")
        data = resp.json()
        try:
            return data['choices'][0]['message']['content'].strip()
        except (KeyError, IndexError, TypeError, AttributeError) as ex:
            raise EnrichmentFailure(f"unexpected text generation response: {ex}") from ex

    def summarize(self, title: str, body: str, comments: List[str]) -> Summary:
        """Return a Summary; any failure of any register surfaces as EnrichmentFailure."""
        text = _thread_text(title or '', body or '', comments or [])
        started = time.monotonic()
        try:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                futures = {reg: pool.submit(self._complete, REGISTER_INSTRUCTIONS[reg], text) for reg in SUMMARY_REGISTERS}
                registers: Dict[str, str] = {reg: f.result() for reg, f in futures.items()}
        except EnrichmentFailure:
            raise
        except (requests.RequestException, ValueError) as ex:
            raise EnrichmentFailure(str(ex)) from ex
        logger.debug("Generated %d summary registers in %.2fs", len(registers), time.monotonic() - started)
        return Summary(generated_at=isoformat(self.clock()), **registers)
