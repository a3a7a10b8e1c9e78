"""
Scoring utility functions.
Provides weight loading and time helpers used by scoring.metrics.
"""
from datetime import datetime, timezone
from typing import Dict, Optional
import os
import yaml

# filename used for weight YAML configuration
WEIGHTS_FILENAME = 'weights.yaml'

DEFAULT_WEIGHTS = {
    'age_base': 100.0,  # age term is max(0, age_base - age_in_days)
    'comment': 5.0,
    'reaction': 3.0,
    'participant': 10.0,
    'recent_week_bonus': 50.0,
    'recent_month_bonus': 25.0,
    'reply': 3.0,
    'reply_depth': 10.0,
    'state_change': 10.0,
}

SECONDS_PER_DAY = 60 * 60 * 24


def default_weights_path() -> str:
    return os.path.join(os.path.dirname(__file__), WEIGHTS_FILENAME)


def load_weights(path: Optional[str] = None) -> Dict[str, float]:
    """
    Load activity weights from a YAML file if it exists, otherwise return defaults.
    Keys missing from the file keep their default value; unknown keys are ignored.
    """
    path = path or default_weights_path()
    if not os.path.exists(path):
        return DEFAULT_WEIGHTS.copy()
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Weights file {path} must contain a mapping")
    return {k: float(data.get(k, v)) for k, v in DEFAULT_WEIGHTS.items()}


def parse_timestamp(value) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (GitHub uses a trailing 'Z') into an aware UTC datetime."""
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def days_between(earlier, later: datetime) -> Optional[float]:
    start = parse_timestamp(earlier)
    if start is None:
        return None
    return (later - start).total_seconds() / SECONDS_PER_DAY


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace('+00:00', 'Z')
