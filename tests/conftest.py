import sys
import os

import pytest

# Add project root to sys.path so tests can import top-level modules like 'storage', 'scoring', 'sync', etc.
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from storage.store import IssueStore  # noqa: E402
from storage.cache import EnrichmentCache  # noqa: E402


@pytest.fixture
def store():
    s = IssueStore()
    yield s
    s.close()


@pytest.fixture
def cache():
    c = EnrichmentCache()
    yield c
    c.close()
