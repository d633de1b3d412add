"""Out-of-process model workers.

Each model lives in its own long-lived child process and answers one request
at a time over a ``multiprocessing`` pipe:

    request:  {"type": "embed",  "text": str | list[str]}
              {"type": "rerank", "text": json.dumps([query, documents, options])}
    response: {"type": "result", "embeddings" | "embedding" | "reranked": ...}
              {"type": "error",  "error": str}

``None`` asks the worker to exit. A worker whose model fails to load exits
with a non-zero code; the host notices the closed pipe, raises
``WorkerUnavailableError`` to the caller and spawns a fresh process on the
next request. Failed requests are never retried here.
"""

from __future__ import annotations

import json
import logging
import multiprocessing
import sys
import threading
from dataclasses import asdict
from multiprocessing.connection import Connection
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Sequence

import numpy as np

from folio.config import AppConfig
from folio.errors import WorkerError, WorkerUnavailableError
from folio.models import RankResult

if TYPE_CHECKING:
    from folio.embedding.encoder import EmbeddingModel, RerankerModel

LOGGER = logging.getLogger(__name__)

Message = Dict[str, Any]
Handler = Callable[[Message], Message]


class ModelLoadError(RuntimeError):
    """Raised inside a worker when its model cannot be loaded."""


def serve(conn: Connection, handler: Handler) -> None:
    """Answer requests on ``conn`` one at a time until the stop sentinel or EOF.

    ``ModelLoadError`` is not answered: it propagates so the process dies.
    """
    try:
        while True:
            try:
                message = conn.recv()
            except EOFError:
                break
            if message is None:
                break
            try:
                reply = handler(message)
            except ModelLoadError:
                raise
            except Exception as exc:
                LOGGER.exception("Worker request failed")
                reply = {"type": "error", "error": str(exc) or type(exc).__name__}
            conn.send(reply)
    finally:
        conn.close()


class EmbeddingHandler:
    """Turns ``embed`` requests into vectors."""

    def __init__(self, model: EmbeddingModel) -> None:
        self.model = model

    def initialize(self) -> None:
        try:
            self.model.initialize()
        except Exception as exc:
            raise ModelLoadError(f"Failed to load embedding model: {exc}") from exc

    def __call__(self, message: Message) -> Message:
        if message.get("type") != "embed":
            return {"type": "error", "error": f"Unsupported request type: {message.get('type')!r}"}
        self.initialize()
        text = message.get("text")
        if isinstance(text, str):
            return {"type": "result", "embedding": self.model.embed([text])[0].tolist()}
        return {"type": "result", "embeddings": self.model.embed(list(text or [])).tolist()}


class RerankHandler:
    """Turns ``rerank`` requests into sorted relevance scores."""

    def __init__(self, model: RerankerModel) -> None:
        self.model = model

    def initialize(self) -> None:
        try:
            self.model.initialize()
        except Exception as exc:
            raise ModelLoadError(f"Failed to load reranker model: {exc}") from exc

    def __call__(self, message: Message) -> Message:
        if message.get("type") != "rerank":
            return {"type": "error", "error": f"Unsupported request type: {message.get('type')!r}"}
        query, documents, options = _decode_rerank_payload(message.get("text"))
        self.initialize()
        ranked = self.model.rank(
            query,
            documents,
            top_k=options.get("top_k"),
            return_documents=bool(options.get("return_documents", False)),
        )
        return {"type": "result", "reranked": [_rank_to_dict(item) for item in ranked]}


def _decode_rerank_payload(text: Any) -> tuple[str, List[str], Dict[str, Any]]:
    try:
        payload = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise ValueError("Rerank payload must be a JSON-encoded [query, documents, options]") from exc
    if not isinstance(payload, list) or len(payload) < 2:
        raise ValueError("Rerank payload must be a JSON-encoded [query, documents, options]")
    query, documents = payload[0], payload[1]
    if not isinstance(documents, list):
        documents = [documents]
    options = payload[2] if len(payload) > 2 and isinstance(payload[2], dict) else {}
    return str(query), [str(document) for document in documents], options


def _rank_to_dict(result: RankResult) -> Dict[str, Any]:
    data = asdict(result)
    if data["text"] is None:
        del data["text"]
    return data


def _configure_worker_logging() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(processName)s: %(message)s")


def run_embedding_worker(conn: Connection, model_name: str, batch_size: int, device: str | None) -> None:
    """Process entry point for the embedding worker."""
    from folio.embedding.encoder import EmbeddingConfig, EmbeddingModel

    _configure_worker_logging()
    config = EmbeddingConfig(model_name=model_name, batch_size=batch_size, device=device)
    try:
        serve(conn, EmbeddingHandler(EmbeddingModel(config)))
    except ModelLoadError as exc:
        LOGGER.error("%s; exiting", exc)
        sys.exit(1)


def run_reranker_worker(conn: Connection, model_name: str, device: str | None) -> None:
    """Process entry point for the reranker worker."""
    from folio.embedding.encoder import RerankerModel

    _configure_worker_logging()
    try:
        serve(conn, RerankHandler(RerankerModel(model_name, device=device)))
    except ModelLoadError as exc:
        LOGGER.error("%s; exiting", exc)
        sys.exit(1)


class WorkerProcess:
    """Host-side handle on one lazily spawned worker process.

    Requests are serialized with a lock, so concurrent callers queue up in
    front of the worker instead of overlapping on the pipe.
    """

    def __init__(
        self,
        target: Callable[..., None],
        args: Sequence[Any] = (),
        *,
        name: str = "worker",
        start_method: str | None = "spawn",
        stop_timeout: float = 5.0,
    ) -> None:
        self.name = name
        self._target = target
        self._args = tuple(args)
        self._context = multiprocessing.get_context(start_method)
        self._stop_timeout = stop_timeout
        self._lock = threading.Lock()
        self._process: multiprocessing.process.BaseProcess | None = None
        self._conn: Connection | None = None
        self.spawn_count = 0

    @property
    def is_alive(self) -> bool:
        return self._process is not None and self._process.is_alive()

    def _ensure_started(self) -> Connection:
        if self._conn is not None and self.is_alive:
            return self._conn
        if self._process is not None:
            LOGGER.warning(
                "%s worker exited (code %s); spawning a fresh one", self.name, self._process.exitcode
            )
            self._discard()

        parent_conn, child_conn = self._context.Pipe()
        process = self._context.Process(
            target=self._target,
            args=(child_conn, *self._args),
            name=f"folio-{self.name}",
            daemon=True,
        )
        process.start()
        child_conn.close()
        self._process = process
        self._conn = parent_conn
        self.spawn_count += 1
        LOGGER.info("Started %s worker (pid %s)", self.name, process.pid)
        return parent_conn

    def _discard(self) -> None:
        if self._conn is not None:
            self._conn.close()
        if self._process is not None:
            self._process.join(timeout=self._stop_timeout)
            if self._process.is_alive():
                self._process.terminate()
        self._conn = None
        self._process = None

    def request(self, message: Message) -> Message:
        """Send one request and wait for its reply."""
        with self._lock:
            conn = self._ensure_started()
            try:
                conn.send(message)
                reply = conn.recv()
            except (EOFError, OSError) as exc:
                exitcode = self._process.exitcode if self._process is not None else None
                self._discard()
                raise WorkerUnavailableError(
                    f"{self.name} worker unavailable (exit code {exitcode})"
                ) from exc

        if reply.get("type") == "error":
            raise WorkerError(reply.get("error", "unknown worker error"))
        return reply

    def stop(self) -> None:
        """Ask the worker to exit, terminating it if it does not."""
        with self._lock:
            process, conn = self._process, self._conn
            if process is None:
                return
            try:
                if conn is not None and process.is_alive():
                    conn.send(None)
            except OSError as exc:
                LOGGER.debug("Could not signal %s worker to stop: %s", self.name, exc)
            process.join(timeout=self._stop_timeout)
            if process.is_alive():
                LOGGER.warning("%s worker did not exit, terminating", self.name)
                process.terminate()
                process.join(timeout=self._stop_timeout)
            if conn is not None:
                conn.close()
            self._process = None
            self._conn = None
            LOGGER.info("Stopped %s worker", self.name)


class EmbeddingService:
    """Client for the embedding worker.

    Lists larger than ``batch_size`` are sent as sequential sub-batches so at
    most one model execution runs at a time.
    """

    def __init__(self, worker: WorkerProcess, *, batch_size: int = 15) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.worker = worker
        self.batch_size = batch_size

    @classmethod
    def from_config(cls, config: AppConfig) -> "EmbeddingService":
        worker = WorkerProcess(
            run_embedding_worker,
            (config.model_name, config.embed_batch_size, config.device),
            name="embedding",
        )
        return cls(worker, batch_size=config.embed_batch_size)

    def embed(self, texts: str | Sequence[str]) -> np.ndarray:
        """Embed one string (returns a vector) or a list (returns a 2-D array)."""
        if isinstance(texts, str):
            return self.embed([texts])[0]

        items = list(texts)
        if not items:
            return np.empty((0, 0), dtype="float32")

        batches = []
        for start in range(0, len(items), self.batch_size):
            reply = self.worker.request({"type": "embed", "text": items[start : start + self.batch_size]})
            batches.append(np.asarray(reply["embeddings"], dtype="float32"))
        return np.vstack(batches)

    def embed_query(self, text: str) -> np.ndarray:
        return self.embed(text)

    def close(self) -> None:
        self.worker.stop()


class RerankerService:
    """Client for the cross-encoder worker."""

    def __init__(self, worker: WorkerProcess) -> None:
        self.worker = worker

    @classmethod
    def from_config(cls, config: AppConfig) -> "RerankerService":
        worker = WorkerProcess(
            run_reranker_worker,
            (config.reranker_model, config.device),
            name="reranker",
        )
        return cls(worker)

    def rerank(
        self,
        query: str,
        documents: Sequence[str],
        *,
        top_k: int | None = None,
        return_documents: bool = False,
    ) -> List[RankResult]:
        """Score ``documents`` against ``query``; callers drop empty strings beforehand."""
        if not documents:
            return []
        options: Dict[str, Any] = {"return_documents": return_documents}
        if top_k is not None:
            options["top_k"] = top_k
        reply = self.worker.request(
            {"type": "rerank", "text": json.dumps([query, list(documents), options])}
        )
        return [
            RankResult(corpus_id=int(item["corpus_id"]), score=float(item["score"]), text=item.get("text"))
            for item in reply["reranked"]
        ]

    def close(self) -> None:
        self.worker.stop()
