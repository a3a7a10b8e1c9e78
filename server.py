"""
HTTP query surface over the issue store.
"""
import logging
from typing import Optional
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from errors import InvalidQuery
from search.engine import HybridSearchEngine
from storage.store import IssueStore

logger = logging.getLogger(__name__)


def create_app(store: IssueStore, engine: Optional[HybridSearchEngine] = None) -> FastAPI:
    engine = engine or HybridSearchEngine(store)
    app = FastAPI(title="Issue Search API", version="0.1.0")

    @app.get("/health")
    def health():
        return {"status": "ok", "issues": store.count()}

    @app.get("/api/search")
    def search(q: Optional[str] = None):
        try:
            hits = engine.search_with_details(q)
        except InvalidQuery as ex:
            return JSONResponse({"error": str(ex)}, status_code=400)
        logger.info("Search %r returned %d results", q, len(hits))
        return {"query": q, "count": len(hits), "results": [h.to_dict() for h in hits]}

    return app


__all__ = ["create_app"]
