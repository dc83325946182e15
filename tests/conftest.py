"""
Shared test fixtures for the pdf_chat test suite.

Provides the test environment, fake HTTP backends (Ollama, Qdrant) served
through httpx.MockTransport, an in-memory Redis stand-in with pipelines, and
booted clients and services wired like the API server wires them.
"""

import asyncio
import fnmatch
import hashlib
import json
import logging
import math
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from redis.exceptions import WatchError

from services.chat.ChatService import ChatService
from services.pdf_ingestion.Chunker import Chunker
from services.pdf_ingestion.DocumentService import DocumentService
from services.pdf_ingestion.IngestionService import IngestionService
from services.pdf_ingestion.JobQueue import JobQueue
from shared.cache.ResponseCache import ResponseCache
from shared.clients.embed.ollama.EmbedClientOllama import EmbedClientOllama
from shared.clients.llm.ollama.LLMClientOllama import LLMClientOllama
from shared.clients.rag.qdrant.RAGClientQdrant import RAGClientQdrant
from shared.clients.storage.local.StorageClientLocal import StorageClientLocal
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import ColorLogger
from shared.models.chunk import ExtractedText
from shared.repositories.memory.ChatRepositoryMemory import ChatRepositoryMemory
from shared.repositories.memory.DocumentRepositoryMemory import DocumentRepositoryMemory

VECTOR_SIZE = 4
PDF_BYTES = b"%PDF-1.4\n% test document\n"

TEST_ENV = {
    "EMBED_ENGINE": "ollama",
    "EMBED_OLLAMA_BASE_URL": "http://ollama.test",
    "EMBED_MODEL": "nomic-embed-text",
    "LLM_ENGINE": "ollama",
    "LLM_OLLAMA_BASE_URL": "http://ollama.test",
    "LLM_CHAT_MODEL": "llama3",
    "RAG_ENGINE": "qdrant",
    "RAG_QDRANT_BASE_URL": "http://qdrant.test",
    "RAG_QDRANT_COLLECTION": "test_chunks",
    "RAG_VECTOR_SIZE": str(VECTOR_SIZE),
    "STORE_ENGINE": "memory",
    "STORAGE_ENGINE": "local",
    "EMBED_BATCH_DELAY": "0",
    "QUEUE_BACKOFF_DELAY": "0",
    "API_SERVER_API_KEY": "test-key",
}


def fake_vector(text: str) -> list[float]:
    """Deterministic unit vector for a text."""
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    values = [b + 1.0 for b in digest[:VECTOR_SIZE]]
    norm = math.sqrt(sum(v * v for v in values))
    return [v / norm for v in values]


# ---------------------------------------------------------------------------
# Fake backends
# ---------------------------------------------------------------------------

class FakeOllama:
    """Ollama /api/embed and /api/chat over httpx.MockTransport."""

    def __init__(self):
        self.embed_requests: list[list[str]] = []
        self.chat_requests: list[dict] = []
        self.chat_reply = "The answer is on page 1."
        self.embed_failures = 0
        self.chat_status = 200

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "GET" and path in ("", "/"):
            return httpx.Response(200, text="Ollama is running")
        body = json.loads(request.content or b"{}")
        if path == "/api/embed":
            if self.embed_failures > 0:
                self.embed_failures -= 1
                return httpx.Response(503, json={"error": "model is loading"})
            self.embed_requests.append(list(body["input"]))
            return httpx.Response(200, json={"embeddings": [fake_vector(t) for t in body["input"]]})
        if path == "/api/chat":
            self.chat_requests.append(body)
            if self.chat_status != 200:
                return httpx.Response(self.chat_status, json={"error": "boom"})
            return httpx.Response(200, json={"message": {"role": "assistant", "content": self.chat_reply}})
        if path == "/api/show":
            return httpx.Response(200, json={"model_info": {"nomic-bert.embedding_length": VECTOR_SIZE}})
        return httpx.Response(404)


class FakeQdrant:
    """In-memory Qdrant subset: collections, upsert, filtered search, delete."""

    def __init__(self, collection: str = "test_chunks"):
        self.collection = collection
        self.exists = False
        self.vector_size: int | None = None
        self.points: dict[str, dict] = {}
        self.upsert_failures = 0
        self.search_requests: list[dict] = []
        self.leak_foreign_results = False

    @staticmethod
    def _matches(payload: dict, filter: dict | None) -> bool:
        if not filter:
            return True
        return all(payload.get(cond["key"]) == cond["match"]["value"] for cond in filter.get("must", []))

    @staticmethod
    def _cosine(a: list[float], b: list[float]) -> float:
        dot = sum(x * y for x, y in zip(a, b))
        norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
        return dot / norm if norm else 0.0

    def ids_for(self, pdf_id: str) -> set[str]:
        return {pid for pid, point in self.points.items() if point["payload"].get("pdf_id") == pdf_id}

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        base = f"/collections/{self.collection}"
        body = json.loads(request.content) if request.content else {}

        if path == "/healthz":
            return httpx.Response(200, text="healthz check passed")
        if path == f"{base}/exists":
            return httpx.Response(200, json={"result": {"exists": self.exists}})
        if path == base and request.method == "PUT":
            self.exists = True
            self.vector_size = body["vectors"]["size"]
            return httpx.Response(200, json={"result": True})
        if path == base and request.method == "GET":
            vectors = {"size": self.vector_size, "distance": "Cosine"}
            return httpx.Response(200, json={"result": {"config": {"params": {"vectors": vectors}}}})
        if path == f"{base}/index":
            return httpx.Response(200, json={"result": {"status": "acknowledged"}})
        if path == f"{base}/points" and request.method == "PUT":
            if self.upsert_failures > 0:
                self.upsert_failures -= 1
                return httpx.Response(500, json={"status": {"error": "storage unavailable"}})
            for point in body["points"]:
                self.points[str(point["id"])] = {"vector": point["vector"], "payload": point["payload"]}
            return httpx.Response(200, json={"result": {"status": "completed"}})
        if path == f"{base}/points/search":
            self.search_requests.append(body)
            filter = None if self.leak_foreign_results else body.get("filter")
            hits = [
                {"id": pid, "score": self._cosine(body["vector"], point["vector"]), "payload": point["payload"]}
                for pid, point in self.points.items()
                if self._matches(point["payload"], filter)
            ]
            hits.sort(key=lambda hit: hit["score"], reverse=True)
            return httpx.Response(200, json={"result": hits[: body["limit"]]})
        if path == f"{base}/points/delete":
            if "points" in body:
                for pid in body["points"]:
                    self.points.pop(str(pid), None)
            else:
                for pid in [p for p, point in self.points.items() if self._matches(point["payload"], body["filter"])]:
                    del self.points[pid]
            return httpx.Response(200, json={"result": {"status": "completed"}})
        return httpx.Response(404, json={"status": {"error": f"unknown path {path}"}})


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the cache and the redis repositories.

    Strings live in ``store``, sorted sets in ``zsets`` and sets in ``sets``.
    ``watch_conflicts`` makes that many WATCHed transactions fail with
    WatchError, as if another client had written the key in between.
    """

    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.zsets: dict[str, dict[str, float]] = {}
        self.sets: dict[str, set[str]] = {}
        self.watch_conflicts = 0

    async def get(self, key):
        return self.store.get(key)

    async def mget(self, keys):
        return [self.store.get(key) for key in keys]

    async def set(self, key, value, ex=None):
        self.store[key] = value
        if ex is not None:
            self.ttls[key] = ex
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            found = [container.pop(key, None) is not None for container in (self.store, self.zsets, self.sets)]
            self.ttls.pop(key, None)
            removed += int(any(found))
        return removed

    async def zadd(self, key, mapping):
        self.zsets.setdefault(key, {}).update(mapping)
        return len(mapping)

    async def zrem(self, key, *members):
        zset = self.zsets.get(key, {})
        return sum(1 for member in members if zset.pop(member, None) is not None)

    async def zrevrange(self, key, start, end):
        members = sorted(self.zsets.get(key, {}).items(), key=lambda item: item[1], reverse=True)
        ids = [member for member, _ in members]
        return ids[start:] if end == -1 else ids[start:end + 1]

    async def sadd(self, key, *members):
        self.sets.setdefault(key, set()).update(members)
        return len(members)

    async def srem(self, key, *members):
        target = self.sets.get(key, set())
        removed = sum(1 for member in members if member in target)
        target.difference_update(members)
        return removed

    async def smembers(self, key):
        return set(self.sets.get(key, set()))

    async def scan_iter(self, match=None, count=None):
        for key in list(self.store):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    def pipeline(self, transaction=True):
        return FakePipeline(self)

    async def aclose(self):
        return None


class FakePipeline:
    """Buffered commands with WATCH/MULTI semantics, applied on execute()."""

    _BUFFERED = ("set", "delete", "zadd", "zrem", "sadd", "srem")

    def __init__(self, redis: FakeRedis):
        self._redis = redis
        self._commands: list[tuple[str, tuple]] = []
        self._watching = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self._commands.clear()
        self._watching = False

    async def watch(self, *keys):
        self._watching = True

    async def get(self, key):
        return await self._redis.get(key)

    def multi(self):
        self._commands.clear()

    def __getattr__(self, name):
        if name not in self._BUFFERED:
            raise AttributeError(name)

        def buffer(*args, **kwargs):
            self._commands.append((name, args))
            return self

        return buffer

    async def execute(self):
        if self._watching and self._redis.watch_conflicts > 0:
            self._redis.watch_conflicts -= 1
            self._commands.clear()
            self._watching = False
            raise WatchError("Watched variable changed.")
        results = [await getattr(self._redis, name)(*args) for name, args in self._commands]
        self._commands.clear()
        self._watching = False
        return results


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def env(monkeypatch, tmp_path):
    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)
    monkeypatch.setenv("STORAGE_LOCAL_ROOT_DIR", str(tmp_path / "storage"))
    return TEST_ENV


@pytest.fixture
def logger():
    return ColorLogger(logging.getLogger("pdf_chat.tests"))


@pytest.fixture
def helper_config(env, logger):
    return HelperConfig(logger=logger)


# ---------------------------------------------------------------------------
# Backend and client fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def fake_ollama():
    return FakeOllama()


@pytest.fixture
def fake_qdrant():
    return FakeQdrant()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
async def embed_client(helper_config, fake_ollama):
    client = EmbedClientOllama(helper_config=helper_config)
    await client.boot(transport=httpx.MockTransport(fake_ollama.handler))
    yield client
    await client.close()


@pytest.fixture
async def llm_client(helper_config, fake_ollama):
    client = LLMClientOllama(helper_config=helper_config)
    await client.boot(transport=httpx.MockTransport(fake_ollama.handler))
    yield client
    await client.close()


@pytest.fixture
async def rag_client(helper_config, fake_qdrant):
    client = RAGClientQdrant(helper_config=helper_config)
    await client.boot(transport=httpx.MockTransport(fake_qdrant.handler))
    await client.do_ensure_collection()
    yield client
    await client.close()


@pytest.fixture
async def storage(helper_config):
    client = StorageClientLocal(helper_config=helper_config)
    await client.boot()
    return client


@pytest.fixture
def cache(helper_config, fake_redis):
    return ResponseCache(helper_config=helper_config, redis_client=fake_redis)


@pytest.fixture
def documents(helper_config):
    return DocumentRepositoryMemory(helper_config=helper_config)


@pytest.fixture
def chats(helper_config):
    return ChatRepositoryMemory(helper_config=helper_config)


@pytest.fixture
def extractor():
    """Extractor double returning a fixed three page text for any buffer."""
    mock = MagicMock()
    mock.do_extract = AsyncMock(
        return_value=ExtractedText(
            text=(
                "Retrieval augmented generation combines search with a language model. " * 10
                + "\n\nThe warranty period is two years from the date of purchase. " * 10
                + "\n\nReturns are accepted within thirty days with the original receipt. " * 10
            ),
            page_count=3,
            info={"Title": "Test"},
        )
    )
    return mock


# ---------------------------------------------------------------------------
# Service fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def queue(helper_config):
    return JobQueue(helper_config=helper_config, name="test-queue")


@pytest.fixture
def ingestion_service(helper_config, documents, extractor, embed_client, rag_client):
    return IngestionService(
        helper_config=helper_config,
        documents=documents,
        extractor=extractor,
        chunker=Chunker(helper_config=helper_config),
        embed_client=embed_client,
        rag_client=rag_client,
    )


@pytest.fixture
async def running_queue(queue, ingestion_service):
    ingestion_service.register(queue)
    queue.start()
    yield queue
    await queue.shutdown(timeout=5)


@pytest.fixture
def document_service(helper_config, documents, chats, storage, rag_client, cache, running_queue):
    return DocumentService(
        helper_config=helper_config,
        documents=documents,
        chats=chats,
        storage=storage,
        rag_client=rag_client,
        cache=cache,
        queue=running_queue,
    )


@pytest.fixture
def chat_service(helper_config, documents, chats, embed_client, rag_client, llm_client, cache):
    return ChatService(
        helper_config=helper_config,
        documents=documents,
        chats=chats,
        embed_client=embed_client,
        rag_client=rag_client,
        llm_client=llm_client,
        cache=cache,
    )


async def _wait_for_job(queue, job_id: str, timeout: float = 5.0):
    """Poll until the job reaches a terminal state and return its status."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        status = await queue.get_status(job_id)
        if status is not None and status.state.is_terminal:
            return status
        await asyncio.sleep(0.01)
    raise AssertionError(f"Job {job_id} did not finish within {timeout}s")


@pytest.fixture
def wait_for_job():
    return _wait_for_job
