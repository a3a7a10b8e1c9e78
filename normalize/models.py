"""
Unified data models for issues, comments, summaries and their history.
Every model round-trips through plain dicts so the store can keep JSON documents.
"""

from typing import List, Optional, Dict, Any

REACTION_KEYS = ('total', '+1', '-1', 'laugh', 'hooray', 'confused', 'heart', 'rocket', 'eyes')

ISSUE_STATES = ('open', 'closed')
ISSUE_TYPES = ('bug', 'feature', 'content', 'other')
IMPLEMENTATION_STATUSES = ('未対応', '検討中', '実装中', '実装済み')

SUMMARY_LANGUAGE = 'ja'
SUMMARY_REGISTERS = ('short', 'full', 'technical', 'general')


def empty_reactions() -> Dict[str, int]:
    return {k: 0 for k in REACTION_KEYS}


def normalize_reactions(raw: Optional[Dict[str, Any]]) -> Dict[str, int]:
    """Map a GitHub reactions payload (total_count, +1, ...) onto REACTION_KEYS, missing counts as 0."""
    reactions = empty_reactions()
    if not isinstance(raw, dict):
        return reactions
    for k in REACTION_KEYS:
        src = 'total_count' if k == 'total' and 'total_count' in raw else k
        try:
            reactions[k] = int(raw.get(src) or 0)
        except (TypeError, ValueError):
            reactions[k] = 0
    return reactions


class Reply:
    def __init__(self, id: str, author: str, created_at: str):
        self.id = id
        self.author = author
        self.created_at = created_at

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'author': self.author, 'created_at': self.created_at}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'Reply':
        return cls(id=d.get('id', ''), author=d.get('author', ''), created_at=d.get('created_at', ''))


class Comment:
    """
    A top-level comment on an issue, with its (possibly empty) nested replies.
    """
    def __init__(self, id: str, author: str, created_at: str, updated_at: str, body: str = '', reactions: Optional[Dict[str, int]] = None, replies: Optional[List[Reply]] = None, reply_count: int = 0):
        self.id = id
        self.author = author
        self.created_at = created_at
        self.updated_at = updated_at
        self.body = body or ''
        self.reactions = reactions or empty_reactions()
        self.replies = replies or []
        self.reply_count = reply_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'author': self.author,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
            'body': self.body,
            'reactions': dict(self.reactions),
            'replies': [r.to_dict() for r in self.replies],
            'reply_count': self.reply_count,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'Comment':
        return cls(
            id=d.get('id', ''),
            author=d.get('author', ''),
            created_at=d.get('created_at', ''),
            updated_at=d.get('updated_at', ''),
            body=d.get('body') or '',
            reactions=normalize_reactions(d.get('reactions')),
            replies=[Reply.from_dict(r) for r in d.get('replies') or []],
            reply_count=int(d.get('reply_count') or 0),
        )


class Summary:
    """
    Machine-generated summary in one language with four registers.
    Serialized as {'ja': {short, full, technical, general, generated_at}}.
    """
    def __init__(self, short: str, full: str, technical: str, general: str, generated_at: str, language: str = SUMMARY_LANGUAGE):
        self.short = short
        self.full = full
        self.technical = technical
        self.general = general
        self.generated_at = generated_at
        self.language = language

    def to_dict(self) -> Dict[str, Any]:
        return {
            self.language: {
                'short': self.short,
                'full': self.full,
                'technical': self.technical,
                'general': self.general,
                'generated_at': self.generated_at,
            }
        }

    @classmethod
    def from_dict(cls, d: Optional[Dict[str, Any]]) -> Optional['Summary']:
        if not isinstance(d, dict) or not d:
            return None
        language = SUMMARY_LANGUAGE if SUMMARY_LANGUAGE in d else next(iter(d))
        body = d.get(language)
        if not isinstance(body, dict):
            return None
        return cls(
            short=body.get('short', ''),
            full=body.get('full', ''),
            technical=body.get('technical', ''),
            general=body.get('general', ''),
            generated_at=body.get('generated_at', ''),
            language=language,
        )

    def __eq__(self, other):
        return isinstance(other, Summary) and self.to_dict() == other.to_dict()


class HistoryEntry:
    """Engagement snapshot appended once per sync pass."""

    def __init__(self, date: str, comments: int, replies: int, reactions: Dict[str, int], activity_score: int):
        self.date = date
        self.comments = comments
        self.replies = replies
        self.reactions = reactions
        self.activity_score = activity_score

    def to_dict(self) -> Dict[str, Any]:
        return {
            'date': self.date,
            'comments': self.comments,
            'replies': self.replies,
            'reactions': dict(self.reactions),
            'activity_score': self.activity_score,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'HistoryEntry':
        return cls(
            date=d.get('date', ''),
            comments=int(d.get('comments') or 0),
            replies=int(d.get('replies') or 0),
            reactions=normalize_reactions(d.get('reactions')),
            activity_score=int(d.get('activity_score') or 0),
        )


class EngagementMetrics:
    def __init__(self, reply_depth: float, reply_breadth: float, avg_reply_time: float):
        self.reply_depth = reply_depth
        self.reply_breadth = reply_breadth
        self.avg_reply_time = avg_reply_time  # hours

    def to_dict(self) -> Dict[str, Any]:
        return {'reply_depth': self.reply_depth, 'reply_breadth': self.reply_breadth, 'avg_reply_time': self.avg_reply_time}

    @classmethod
    def from_dict(cls, d: Optional[Dict[str, Any]]) -> Optional['EngagementMetrics']:
        if not isinstance(d, dict):
            return None
        return cls(d.get('reply_depth', 0), d.get('reply_breadth', 0), d.get('avg_reply_time', 0))


class RelatedIssue:
    def __init__(self, number: int, similarity: float, relation_type: str):
        self.number = number
        self.similarity = similarity
        self.relation_type = relation_type

    def to_dict(self) -> Dict[str, Any]:
        return {'number': self.number, 'similarity': self.similarity, 'relation_type': self.relation_type}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'RelatedIssue':
        return cls(int(d.get('number') or 0), float(d.get('similarity') or 0.0), d.get('relation_type', ''))


class Issue:
    """
    Normalized issue entity. (repo, number) is the persistence key; id is the forge's opaque node id.
    """
    def __init__(
        self,
        id: str,
        repo: str,
        number: int,
        title: str,
        author: str,
        state: str,
        created_at: str,
        updated_at: str,
        body: str = '',
        closed_at: Optional[str] = None,
        labels: Optional[List[str]] = None,
        issue_type: str = 'other',
        reactions: Optional[Dict[str, int]] = None,
        participants: Optional[List[str]] = None,
        comments: int = 0,
        comments_detail: Optional[List[Comment]] = None,
        total_replies: int = 0,
        activity_score: int = 0,
        priority_score: Optional[float] = None,
        implementation_status: Optional[str] = None,
        engagement_metrics: Optional[EngagementMetrics] = None,
        related_issues: Optional[List[RelatedIssue]] = None,
        history: Optional[List[HistoryEntry]] = None,
        summary: Optional[Summary] = None,
        summary_fingerprint: Optional[str] = None,
    ):
        self.id = id
        self.repo = repo
        self.number = number
        self.title = title
        self.body = body or ''
        self.author = author
        self.state = state
        self.created_at = created_at
        self.updated_at = updated_at
        self.closed_at = closed_at
        self.labels = labels or []
        self.issue_type = issue_type
        self.reactions = reactions or empty_reactions()
        self.participants = participants or []
        self.comments = comments  # count reported by the forge
        self.comments_detail = comments_detail or []
        self.total_replies = total_replies
        self.activity_score = activity_score
        self.priority_score = priority_score
        self.implementation_status = implementation_status
        self.engagement_metrics = engagement_metrics
        self.related_issues = related_issues or []
        self.history = history or []
        self.summary = summary
        self.summary_fingerprint = summary_fingerprint  # fingerprint of the content the summary was generated from

    @property
    def key(self) -> str:
        return issue_key(self.repo, self.number)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'repo': self.repo,
            'number': self.number,
            'title': self.title,
            'body': self.body,
            'author': self.author,
            'state': self.state,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
            'closed_at': self.closed_at,
            'labels': list(self.labels),
            'issue_type': self.issue_type,
            'reactions': dict(self.reactions),
            'participants': list(self.participants),
            'comments': self.comments,
            'comments_detail': [c.to_dict() for c in self.comments_detail],
            'total_replies': self.total_replies,
            'activity_score': self.activity_score,
            'priority_score': self.priority_score,
            'implementation_status': self.implementation_status,
            'engagement_metrics': self.engagement_metrics.to_dict() if self.engagement_metrics else None,
            'related_issues': [r.to_dict() for r in self.related_issues],
            'history': [h.to_dict() for h in self.history],
            'summary': self.summary.to_dict() if self.summary else None,
            'summary_fingerprint': self.summary_fingerprint,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'Issue':
        return cls(
            id=d.get('id', ''),
            repo=d.get('repo', ''),
            number=int(d.get('number') or 0),
            title=d.get('title', ''),
            body=d.get('body') or '',
            author=d.get('author', ''),
            state=d.get('state', 'open'),
            created_at=d.get('created_at', ''),
            updated_at=d.get('updated_at', ''),
            closed_at=d.get('closed_at'),
            labels=list(d.get('labels') or []),
            issue_type=d.get('issue_type') or 'other',
            reactions=normalize_reactions(d.get('reactions')),
            participants=list(d.get('participants') or []),
            comments=int(d.get('comments') or 0),
            comments_detail=[Comment.from_dict(c) for c in d.get('comments_detail') or []],
            total_replies=int(d.get('total_replies') or 0),
            activity_score=int(d.get('activity_score') or 0),
            priority_score=d.get('priority_score'),
            implementation_status=d.get('implementation_status'),
            engagement_metrics=EngagementMetrics.from_dict(d.get('engagement_metrics')),
            related_issues=[RelatedIssue.from_dict(r) for r in d.get('related_issues') or []],
            history=[HistoryEntry.from_dict(h) for h in d.get('history') or []],
            summary=Summary.from_dict(d.get('summary')),
            summary_fingerprint=d.get('summary_fingerprint'),
        )


def issue_key(repo: str, number: int) -> str:
    """Stable string form of the (repo, number) identity, e.g. 'owner/name#42'."""
    return f"{repo}#{int(number)}"
