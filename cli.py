"""
CLI entry point. Wires the pipeline: fetch -> transform -> score -> enrich -> persist, plus search and serving.
"""

import argparse
import json
import logging
import sys
from typing import Optional
from config import Settings, load_settings
from enrich.enricher import Enricher
from enrich.summarizer import OpenAISummarizer
from errors import InvalidQuery
from ingest.github import GitHubClient
from normalize.models import IMPLEMENTATION_STATUSES
from scoring.metrics import rank_issues, ranking_score
from scoring.utils import load_weights
from search.engine import HybridSearchEngine
from storage.cache import EnrichmentCache
from storage.retry import RateLimitGate
from storage.store import IssueStore
from sync import SyncOrchestrator

logger = logging.getLogger(__name__)


def _print_json(obj):
    print(json.dumps(obj, indent=2, ensure_ascii=False, default=str))


def _print_cache_stats(cache: EnrichmentCache):
    _print_json(cache.stats())


def _print_cache_list(cache: EnrichmentCache):
    _print_json(cache.list_keys(limit=1000))


def _print_cache_get(cache: EnrichmentCache, key: str):
    record = cache.get(key)
    if record is None:
        print(f"Cache key not found: {key}")
    else:
        _print_json(record.to_dict())


def _remove_cache_key(cache: EnrichmentCache, key: str, force: bool):
    if not force:
        confirm = input(f"Are you sure you want to remove cache key '{key}' from {cache.path}? [y/N]: ")
        if confirm.strip().lower() not in ("y", "yes"):
            print("Aborted cache key removal.")
            return
    removed = cache.delete_key(key)
    if removed:
        print(f"Removed {removed} row(s) for key: {key}")
    else:
        print(f"Cache key not found: {key}")


def _clear_cache(cache: EnrichmentCache, force: bool):
    if not force:
        confirm = input(f"Are you sure you want to clear the cache at {cache.path}? This cannot be undone. [y/N]: ")
        if confirm.strip().lower() not in ("y", "yes"):
            print("Aborted cache clear.")
            return
    cache.clear()
    print(f"Cleared cache at {cache.path}")


def _has_cache_action(args) -> bool:
    return bool(args.cache_info or args.cache_clear or args.cache_list or args.cache_get or args.cache_remove)


def _handle_cache_actions(args, settings: Settings) -> bool:
    """Process cache inspection/management flags. Returns True if an action was performed."""
    if not _has_cache_action(args):
        return False
    with EnrichmentCache(settings.cache_path) as cache:
        # map flag to handler callable; the first enabled one wins
        flag_actions = [
            (args.cache_info, lambda: _print_cache_stats(cache)),
            (args.cache_clear, lambda: _clear_cache(cache, args.force)),
            (args.cache_list, lambda: _print_cache_list(cache)),
            (bool(args.cache_get), lambda: _print_cache_get(cache, args.cache_get)),
            (bool(args.cache_remove), lambda: _remove_cache_key(cache, args.cache_remove, args.force)),
        ]
        for enabled, handler in flag_actions:
            if enabled:
                handler()
                break
    return True


def build_orchestrator(settings: Settings, store: IssueStore, cache: Optional[EnrichmentCache], weights=None, enrich: bool = True) -> SyncOrchestrator:
    client = GitHubClient(
        settings.github_token,
        settings.repo,
        gate=RateLimitGate(),
        page_delay=settings.page_delay,
        comment_page_delay=settings.comment_page_delay,
        max_attempts=settings.max_rate_limit_attempts,
    )
    enricher = None
    if cache is not None:
        summarizer = None
        if enrich and settings.enrichment_enabled:
            summarizer = OpenAISummarizer(settings.openai_api_key, model=settings.openai_model)
        else:
            logger.warning("OPENAI_API_KEY not set or enrichment disabled; summaries will only be carried forward")
        enricher = Enricher(summarizer, cache)
    return SyncOrchestrator(
        client,
        store,
        settings.repo,
        enricher=enricher,
        per_page=settings.page_size,
        comment_workers=settings.comment_workers,
        storage_retry_attempts=settings.storage_retry_attempts,
        storage_retry_delay=settings.storage_retry_delay,
        weights=weights,
    )


def cmd_sync(args, settings: Settings) -> int:
    if not settings.github_token:
        print("Missing required token: set GH_TOKEN (or GITHUB_TOKEN)")
        return 2
    weights = load_weights(args.weights or None)
    with IssueStore(settings.db_path) as store, EnrichmentCache(settings.cache_path) as cache:
        if args.snapshot:
            store.import_snapshot(settings.snapshot_path)
        orchestrator = build_orchestrator(settings, store, cache, weights=weights, enrich=not args.no_enrich)
        report = orchestrator.run()
        if args.snapshot and report.state != 'failed':
            store.export_snapshot(settings.snapshot_path)
    _print_json(report.to_dict())
    return 0 if report.ok else 1


def cmd_search(args, settings: Settings) -> int:
    with IssueStore(settings.db_path) as store:
        engine = HybridSearchEngine(store)
        try:
            hits = engine.search_with_details(args.query)
        except InvalidQuery as ex:
            print(f"Invalid query: {ex}")
            return 2
        if args.json:
            _print_json([h.to_dict() for h in hits])
            return 0
        if not hits:
            print("No results.")
        for h in hits:
            print(f"#{h.issue.number:<6} [{h.match:<11}] {h.score:>8.3f}  {h.issue.title}")
    return 0


def cmd_top(args, settings: Settings) -> int:
    with IssueStore(settings.db_path) as store:
        ranked = rank_issues(store.all())[:args.limit]
    for issue in ranked:
        status = issue.implementation_status or '-'
        print(f"#{issue.number:<6} {ranking_score(issue):>8.1f}  {issue.state:<6} {status:<6} {issue.title}")
    return 0


def cmd_serve(args, settings: Settings) -> int:
    import uvicorn
    from server import create_app

    store = IssueStore(settings.db_path)
    try:
        uvicorn.run(create_app(store), host=args.host, port=settings.port, log_level=settings.log_level.lower())
    finally:
        store.close()
    return 0


def cmd_export(args, settings: Settings) -> int:
    with IssueStore(settings.db_path) as store:
        count = store.export_snapshot(settings.snapshot_path)
    print(f"Exported {count} issues to {settings.snapshot_path}")
    return 0


def cmd_import(args, settings: Settings) -> int:
    with IssueStore(settings.db_path) as store:
        count = store.import_snapshot(settings.snapshot_path)
    print(f"Imported {count} issues from {settings.snapshot_path}")
    return 0


def cmd_triage(args, settings: Settings) -> int:
    if args.priority is None and args.status is None:
        print("Nothing to do: pass --priority and/or --status")
        return 2
    with IssueStore(settings.db_path) as store:
        try:
            issue = store.set_triage(settings.repo, args.number, priority_score=args.priority, implementation_status=args.status)
        except KeyError:
            print(f"Issue not found: {settings.repo}#{args.number}")
            return 1
        except ValueError as ex:
            print(str(ex))
            return 2
    print(f"Updated {issue.key}: priority={issue.priority_score} status={issue.implementation_status}")
    return 0


COMMANDS = {
    'sync': cmd_sync,
    'search': cmd_search,
    'top': cmd_top,
    'serve': cmd_serve,
    'export': cmd_export,
    'import': cmd_import,
    'triage': cmd_triage,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="GitHub issue sync, enrichment and search")
    parser.add_argument("--repo", type=str, default=None, help="Repository as owner/name (overrides TARGET_REPO env)")
    parser.add_argument("--db", type=str, default=None, help="Path to the SQLite issue store (overrides ISSUE_DB_PATH env)")
    parser.add_argument("--cache", type=str, default=None, help="Path to the SQLite enrichment cache (overrides ISSUE_CACHE_PATH env)")
    parser.add_argument("--snapshot-path", type=str, default=None, help="Path of the JSON snapshot file (overrides ISSUE_SNAPSHOT_PATH env)")
    parser.add_argument("--log-level", type=str, default=None, help="Logging level (overrides ISSUE_LOG_LEVEL env)")
    parser.add_argument("--cache-info", action="store_true", help="Show enrichment cache statistics")
    parser.add_argument("--cache-clear", action="store_true", help="Clear the enrichment cache")
    parser.add_argument("--cache-list", action="store_true", help="List enrichment cache keys")
    parser.add_argument("--cache-get", type=str, default="", help="Show one enrichment cache entry (key is owner/name#number)")
    parser.add_argument("--cache-remove", type=str, default="", help="Remove one enrichment cache entry")
    parser.add_argument("--force", action="store_true", help="Force actions without confirmation (use with --cache-clear or --cache-remove)")

    sub = parser.add_subparsers(dest="command")

    p_sync = sub.add_parser("sync", help="Fetch, score, enrich and store every issue of the repository")
    p_sync.add_argument("--snapshot", action="store_true", help="Import the JSON snapshot before the run and export it afterwards")
    p_sync.add_argument("--no-enrich", action="store_true", help="Never call the text-generation service")
    p_sync.add_argument("--weights", type=str, default="", help="YAML file with activity score weights")
    p_sync.add_argument("--per-page", type=int, default=None, help="Issues per page (overrides ISSUE_PAGE_SIZE env)")
    p_sync.add_argument("--comment-workers", type=int, default=None, help="Concurrent comment fetchers (overrides ISSUE_COMMENT_WORKERS env)")

    p_search = sub.add_parser("search", help="Hybrid full-text / approximate search over stored issues")
    p_search.add_argument("query", type=str)
    p_search.add_argument("--json", action="store_true", help="Print full result documents as JSON")

    p_top = sub.add_parser("top", help="List stored issues by priority, then activity score")
    p_top.add_argument("--limit", type=int, default=20)

    p_serve = sub.add_parser("serve", help="Serve the search API over HTTP")
    p_serve.add_argument("--host", type=str, default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=None, help="Port (overrides PORT env)")

    sub.add_parser("export", help="Write every stored issue to the JSON snapshot")
    sub.add_parser("import", help="Load issues from the JSON snapshot into the store")

    p_triage = sub.add_parser("triage", help="Set the priority score and/or implementation status of an issue")
    p_triage.add_argument("number", type=int)
    p_triage.add_argument("--priority", type=float, default=None)
    p_triage.add_argument("--status", type=str, default=None, choices=IMPLEMENTATION_STATUSES)
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = load_settings(
        repo=args.repo,
        db_path=args.db,
        cache_path=args.cache,
        snapshot_path=args.snapshot_path,
        log_level=args.log_level,
        page_size=getattr(args, 'per_page', None),
        comment_workers=getattr(args, 'comment_workers', None),
        port=getattr(args, 'port', None),
    )
    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logger.debug("Settings: %s", settings.to_dict())

    if _handle_cache_actions(args, settings):
        return 0
    if not args.command:
        parser.print_help()
        return 2
    return COMMANDS[args.command](args, settings)


if __name__ == "__main__":
    sys.exit(main())
