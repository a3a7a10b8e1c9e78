"""
Activity scoring.
Turns an issue's engagement signals into an integer activity score and ranks issues by it.

Every term is a separate pure function so it can be tested on its own; activity_score()
adds them up and rounds half up. Nothing here reads the clock unless `now` is omitted.
"""
import math
from datetime import datetime
from typing import List, Dict, Any, Optional
from normalize.models import Issue, Comment, EngagementMetrics, HistoryEntry
from normalize.util import collect_participants
from .utils import load_weights, days_between, parse_timestamp, utc_now, isoformat, DEFAULT_WEIGHTS

# reserved extension points: no collaborator supplies real reply-thread or state-history data yet
DEFAULT_REPLY_DEPTH = 1
DEFAULT_STATE_CHANGE_COUNT = 0


def age_term(created_at, now: datetime, weights: Dict[str, float] = DEFAULT_WEIGHTS) -> float:
    age_days = days_between(created_at, now)
    if age_days is None:
        return 0.0
    return max(0.0, weights['age_base'] - age_days)


def comment_term(comment_count: int, weights: Dict[str, float] = DEFAULT_WEIGHTS) -> float:
    return (comment_count or 0) * weights['comment']


def reaction_term(total_reactions: int, weights: Dict[str, float] = DEFAULT_WEIGHTS) -> float:
    return (total_reactions or 0) * weights['reaction']


def participant_term(participant_count: int, weights: Dict[str, float] = DEFAULT_WEIGHTS) -> float:
    return (participant_count or 0) * weights['participant']


def recency_bonus(updated_at, now: datetime, weights: Dict[str, float] = DEFAULT_WEIGHTS) -> float:
    since_update = days_between(updated_at, now)
    if since_update is None:
        return 0.0
    if since_update < 7:
        return weights['recent_week_bonus']
    if since_update < 30:
        return weights['recent_month_bonus']
    return 0.0


def reply_term(total_replies: int, weights: Dict[str, float] = DEFAULT_WEIGHTS) -> float:
    return (total_replies or 0) * weights['reply']


def reply_depth_term(reply_depth: float, weights: Dict[str, float] = DEFAULT_WEIGHTS) -> float:
    return (reply_depth or 0) * weights['reply_depth']


def state_change_term(state_change_count: int, weights: Dict[str, float] = DEFAULT_WEIGHTS) -> float:
    return (state_change_count or 0) * weights['state_change']


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def activity_score(issue: Issue, comments: Optional[List[Comment]] = None, extra: Optional[Dict[str, Any]] = None, now: Optional[datetime] = None, weights: Optional[Dict[str, float]] = None) -> int:
    """
    Compute the activity score of an issue.

    :param comments: comment list to derive participants and reply totals from (defaults to issue.comments_detail).
    :param extra: optional overrides for 'total_replies', 'reply_depth' and 'state_change_count'.
    :param now: reference time; inject a fixed value for deterministic results.
    :param weights: term weights (defaults to DEFAULT_WEIGHTS, see scoring.utils.load_weights).
    """
    comments = issue.comments_detail if comments is None else comments
    extra = extra or {}
    weights = weights or DEFAULT_WEIGHTS
    now = now or utc_now()

    total_replies = extra.get('total_replies')
    if total_replies is None:
        total_replies = sum(c.reply_count for c in comments)
    reply_depth = extra.get('reply_depth', DEFAULT_REPLY_DEPTH)
    state_changes = extra.get('state_change_count', DEFAULT_STATE_CHANGE_COUNT)
    participants = collect_participants(issue.author, comments)

    total = (
        age_term(issue.created_at, now, weights)
        + comment_term(issue.comments, weights)
        + reaction_term(issue.reactions.get('total', 0), weights)
        + participant_term(len(participants), weights)
        + recency_bonus(issue.updated_at, now, weights)
        + reply_term(total_replies, weights)
        + reply_depth_term(reply_depth, weights)
        + state_change_term(state_changes, weights)
    )
    return _round_half_up(total)


def ranking_score(issue: Issue) -> float:
    """An externally assigned priority_score wins over the computed activity score."""
    if issue.priority_score is not None:
        return float(issue.priority_score)
    return float(issue.activity_score)


def rank_issues(issues: List[Issue]) -> List[Issue]:
    """Highest ranking score first; ties keep their input order."""
    return sorted(issues, key=ranking_score, reverse=True)


def compute_engagement_metrics(issue: Issue) -> EngagementMetrics:
    comments = issue.comments_detail
    breadth = sum(1 for c in comments if c.reply_count > 0 or c.replies)
    created = parse_timestamp(issue.created_at)
    waits = []
    if created is not None:
        for c in comments:
            posted = parse_timestamp(c.created_at)
            if posted is not None:
                waits.append(max(0.0, (posted - created).total_seconds() / 3600.0))
    avg_reply_time = round(sum(waits) / len(waits), 2) if waits else 0.0
    return EngagementMetrics(reply_depth=DEFAULT_REPLY_DEPTH, reply_breadth=breadth, avg_reply_time=avg_reply_time)


def build_history_entry(issue: Issue, now: datetime) -> HistoryEntry:
    """Snapshot of the issue's engagement at sync time."""
    return HistoryEntry(
        date=isoformat(now),
        comments=issue.comments,
        replies=issue.total_replies,
        reactions=dict(issue.reactions),
        activity_score=issue.activity_score,
    )


__all__ = [
    "activity_score",
    "age_term",
    "comment_term",
    "reaction_term",
    "participant_term",
    "recency_bonus",
    "reply_term",
    "reply_depth_term",
    "state_change_term",
    "ranking_score",
    "rank_issues",
    "compute_engagement_metrics",
    "build_history_entry",
    "load_weights",
]
