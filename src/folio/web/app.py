"""FastAPI application exposing Folio's search, indexing and embedding operations."""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import asdict
from pathlib import Path
from typing import Any, List

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from folio import __version__
from folio.config import AppConfig
from folio.errors import WorkerError
from folio.index.indexer import IndexStats
from folio.services import FolioServices, build_services
from folio.utils.vectors import similarity_matrix

LOGGER = logging.getLogger(__name__)

MAX_TOP_K = 50

app = FastAPI(title="Folio API", version=__version__)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


class SearchPayload(BaseModel):
    query: str
    top_k: int = 10
    rerank: bool = False


class IndexPayload(BaseModel):
    paths: List[str]


class DeleteDocumentRequest(BaseModel):
    path: str


class EmbedPayload(BaseModel):
    texts: str | List[str]


class RerankPayload(BaseModel):
    query: str
    documents: List[str]
    top_k: int | None = None
    return_documents: bool = False


class SimilarityPayload(BaseModel):
    queries: List[str]
    documents: List[str]


def get_services(request: Request) -> FolioServices:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Services are not running")
    return services


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    if getattr(app.state, "services", None) is not None:
        return
    config = getattr(app.state, "config", None) or AppConfig.from_env()
    app.state.services = await asyncio.to_thread(lambda: build_services(config).start())


@app.on_event("shutdown")
async def shutdown_event() -> None:
    services = getattr(app.state, "services", None)
    if services is not None:
        await asyncio.to_thread(services.close)
        app.state.services = None


@app.exception_handler(WorkerError)
async def worker_error_handler(request: Request, exc: WorkerError) -> JSONResponse:
    LOGGER.error("Model worker failed on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.post("/search")
async def search_documents(
    payload: SearchPayload, services: FolioServices = Depends(get_services)
) -> dict[str, Any]:
    query = payload.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Empty query")

    top_k = max(1, min(payload.top_k, MAX_TOP_K))
    results = await asyncio.to_thread(
        services.searcher.search, query, top_k=top_k, rerank=payload.rerank
    )
    return {"results": [asdict(result) for result in results]}


def _validate_path(raw: str) -> Path:
    clean_path = raw.strip().replace("\r", "").replace("\n", "")
    if not clean_path or "\0" in clean_path:
        raise HTTPException(status_code=400, detail="Invalid path")

    real_path = Path(os.path.realpath(os.path.expanduser(clean_path)))
    safe_base = Path(os.path.realpath(str(Path.home())))
    if real_path != safe_base and safe_base not in real_path.parents:
        raise HTTPException(status_code=403, detail="Access denied: path is outside allowed directory")
    if not real_path.exists():
        raise HTTPException(status_code=404, detail="Path not found: %s" % clean_path)
    return real_path


def _run_index_job(services: FolioServices, paths: List[Path]) -> IndexStats:
    stats = IndexStats()
    for path in paths:
        if path.is_dir():
            result = services.indexer.index_directory(path)
            stats.inserted += result.inserted
            stats.updated += result.updated
            stats.skipped += result.skipped
            stats.failed += result.failed
            stats.removed += result.removed
            stats.processed_files.extend(result.processed_files)
        else:
            stats.increment(services.indexer.index_file(path), path)
    return stats


@app.post("/index")
async def index_documents(
    payload: IndexPayload, services: FolioServices = Depends(get_services)
) -> dict[str, Any]:
    if not payload.paths:
        raise HTTPException(status_code=400, detail="No path provided")

    resolved_paths = [_validate_path(path) for path in payload.paths]
    try:
        stats = await asyncio.to_thread(_run_index_job, services, resolved_paths)
    except WorkerError:
        raise
    except Exception as exc:
        LOGGER.exception("Indexing failed: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    return {
        "status": "ok",
        "stats": {
            "inserted": stats.inserted,
            "updated": stats.updated,
            "skipped": stats.skipped,
            "failed": stats.failed,
            "removed": stats.removed,
            "processed_files": [str(path) for path in stats.processed_files],
        },
    }


@app.get("/documents")
async def list_documents(services: FolioServices = Depends(get_services)) -> dict[str, Any]:
    """List all indexed documents with store statistics."""
    return {"documents": services.store.list_documents(), "stats": services.store.get_stats()}


@app.post("/documents/delete")
async def delete_document(
    payload: DeleteDocumentRequest, services: FolioServices = Depends(get_services)
) -> dict[str, Any]:
    """Delete a document by path or URL."""
    if not payload.path.strip():
        raise HTTPException(status_code=400, detail="A path must be provided")

    deleted = await asyncio.to_thread(services.indexer.remove_file, payload.path)
    if not deleted:
        raise HTTPException(status_code=404, detail="Document not found")
    return {"status": "ok", "deleted": deleted}


@app.post("/embeddings/embed")
async def embed_texts(
    payload: EmbedPayload, services: FolioServices = Depends(get_services)
) -> dict[str, Any]:
    vectors = await asyncio.to_thread(services.embedder.embed, payload.texts)
    if isinstance(payload.texts, str):
        return {"embedding": vectors.tolist()}
    return {"embeddings": vectors.tolist()}


@app.post("/embeddings/rerank")
async def rerank_documents(
    payload: RerankPayload, services: FolioServices = Depends(get_services)
) -> dict[str, Any]:
    ranked = await asyncio.to_thread(
        services.reranker.rerank,
        payload.query,
        payload.documents,
        top_k=payload.top_k,
        return_documents=payload.return_documents,
    )
    return {"results": [asdict(item) for item in ranked]}


@app.post("/embeddings/similarity")
async def similarity_scores(
    payload: SimilarityPayload, services: FolioServices = Depends(get_services)
) -> dict[str, Any]:
    """Cosine similarity of every query against every document."""
    if not payload.queries or not payload.documents:
        return {"scores": []}

    def _compute() -> List[List[float]]:
        queries = services.embedder.embed(payload.queries)
        documents = services.embedder.embed(payload.documents)
        return similarity_matrix(queries, documents).tolist()

    return {"scores": await asyncio.to_thread(_compute)}
