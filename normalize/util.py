"""
Normalization helpers.
Map raw GitHub issue/comment payloads into normalize.models entities and classify issue types.
"""
import re
from typing import Dict, Any, List, Optional
from normalize.models import Issue, Comment, normalize_reactions

GHOST_LOGIN = 'ghost'

# label rules: exact (case-insensitive) label match, checked in this order
BUG_LABELS = {'bug', 'defect', 'error', 'crash'}
FEATURE_LABELS = {'feature', 'enhancement', 'request', 'new feature'}
CONTENT_LABELS = {'content', 'asset', 'avatar', 'world', 'model'}

# fallback rules: regex scan of "title body", checked in the same order
BUG_PATTERN = re.compile(r"bug|crash|error|broken|doesn't work|issue|problem|fail", re.IGNORECASE)
FEATURE_PATTERN = re.compile(r"feature|add|enhance|improve|request|would be nice|suggestion", re.IGNORECASE)
CONTENT_PATTERN = re.compile(r"content|asset|avatar|world|model|texture|material", re.IGNORECASE)

LABEL_RULES = (('bug', BUG_LABELS), ('feature', FEATURE_LABELS), ('content', CONTENT_LABELS))
TEXT_RULES = (('bug', BUG_PATTERN), ('feature', FEATURE_PATTERN), ('content', CONTENT_PATTERN))


def _login(raw: Optional[Dict[str, Any]]) -> str:
    if not isinstance(raw, dict):
        return GHOST_LOGIN
    return (raw.get('user') or {}).get('login') or GHOST_LOGIN


def classify_issue_type(labels: List[str], title: str, body: str) -> str:
    """First matching rule wins: bug/feature/content labels, then the same families in the text, else 'other'."""
    lower_labels = {(l or '').strip().lower() for l in labels or []}
    for issue_type, keywords in LABEL_RULES:
        if lower_labels & keywords:
            return issue_type
    text = f"{title or ''} {body or ''}"
    for issue_type, pattern in TEXT_RULES:
        if pattern.search(text):
            return issue_type
    return 'other'


def collect_participants(author: str, comments: List[Comment]) -> List[str]:
    """Unique authors of the issue and its comments, in first-seen order."""
    seen: Dict[str, None] = {}
    for login in [author] + [c.author for c in comments or []]:
        if login and login not in seen:
            seen[login] = None
    return list(seen)


def transform_comment(raw: Dict[str, Any]) -> Comment:
    return Comment(
        id=str(raw.get('node_id') or raw.get('id') or ''),
        author=_login(raw),
        created_at=raw.get('created_at') or '',
        updated_at=raw.get('updated_at') or raw.get('created_at') or '',
        body=raw.get('body') or '',
        reactions=normalize_reactions(raw.get('reactions')),
        replies=[],
        reply_count=0,
    )


def _label_names(raw_labels) -> List[str]:
    names = []
    for label in raw_labels or []:
        name = label.get('name') if isinstance(label, dict) else label
        if name:
            names.append(str(name))
    return names


def transform_issue(raw_issue: Dict[str, Any], raw_comments: Optional[List[Dict[str, Any]]], repo: str) -> Issue:
    """Create an Issue from a raw GitHub issue and its comments.

    Scores, history, related issues and summary are left empty; the sync pipeline fills them.
    """
    comments = [transform_comment(c) for c in raw_comments or [] if isinstance(c, dict)]
    labels = _label_names(raw_issue.get('labels'))
    title = raw_issue.get('title') or ''
    body = raw_issue.get('body') or ''
    author = _login(raw_issue)
    return Issue(
        id=str(raw_issue.get('node_id') or raw_issue.get('id') or ''),
        repo=repo,
        number=int(raw_issue.get('number') or 0),
        title=title,
        body=body,
        author=author,
        state=raw_issue.get('state') if raw_issue.get('state') in ('open', 'closed') else 'open',
        created_at=raw_issue.get('created_at') or '',
        updated_at=raw_issue.get('updated_at') or raw_issue.get('created_at') or '',
        closed_at=raw_issue.get('closed_at') or None,
        labels=labels,
        issue_type=classify_issue_type(labels, title, body),
        reactions=normalize_reactions(raw_issue.get('reactions')),
        participants=collect_participants(author, comments),
        comments=int(raw_issue.get('comments') or 0),
        comments_detail=comments,
        total_replies=sum(c.reply_count for c in comments),
    )
