"""FastAPI application entry point for the PDF chat backend."""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.asyncio import Redis

from server.core.error_handlers import register_exception_handlers
from server.models.responses import HealthResponse
from server.routers.ChatRouter import router as chat_router
from server.routers.DocumentRouter import router as document_router
from server.routers.QueueRouter import router as queue_router
from services.chat.ChatService import ChatService
from services.pdf_ingestion.Chunker import Chunker
from services.pdf_ingestion.DocumentService import DocumentService
from services.pdf_ingestion.IngestionService import IngestionService
from services.pdf_ingestion.JobQueue import JobQueue
from services.pdf_ingestion.TextExtractor import TextExtractor
from shared.cache.ResponseCache import ResponseCache
from shared.clients.ClientInterface import ClientInterface
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.llm.LLMClientManager import LLMClientManager
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.clients.storage.StorageClientManager import StorageClientManager
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging
from shared.repositories.RepositoryManager import RepositoryManager

logging = setup_logging()
app_version = os.getenv("APP_VERSION", "unknown")

QUEUE_NAME = "pdf-processing"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # when the app starts
    app.state.logging = logging
    helper_config = HelperConfig(logger=logging)
    app.state.helper_config = helper_config

    redis_client = Redis.from_url(
        helper_config.get_string_val("REDIS_URL", default="redis://localhost:6379/0"),
        decode_responses=True,
    )
    repositories = RepositoryManager(helper_config=helper_config, redis_client=redis_client)
    embed_client = EmbedClientManager(helper_config=helper_config).get_client()
    rag_client = RAGClientManager(helper_config=helper_config).get_client()
    llm_client = LLMClientManager(helper_config=helper_config).get_client()
    storage_client = StorageClientManager(helper_config=helper_config).get_client()
    http_clients: list[ClientInterface] = [embed_client, rag_client, llm_client]

    logging.info("Booting all clients...")
    for client in http_clients:
        await client.boot()
    await storage_client.boot()
    logging.info("All clients booted successfully.")

    await check_connections(http_clients)
    embedding_size, _ = await embed_client.do_fetch_embedding_vector_size()
    await rag_client.do_ensure_collection(embedding_size=embedding_size)

    cache = ResponseCache(helper_config=helper_config, redis_client=redis_client)
    queue = JobQueue(helper_config=helper_config, name=QUEUE_NAME)
    ingestion_service = IngestionService(
        helper_config=helper_config,
        documents=repositories.get_document_repository(),
        extractor=TextExtractor(helper_config=helper_config),
        chunker=Chunker(helper_config=helper_config),
        embed_client=embed_client,
        rag_client=rag_client,
    )
    ingestion_service.register(queue)

    app.state.document_service = DocumentService(
        helper_config=helper_config,
        documents=repositories.get_document_repository(),
        chats=repositories.get_chat_repository(),
        storage=storage_client,
        rag_client=rag_client,
        cache=cache,
        queue=queue,
    )
    app.state.chat_service = ChatService(
        helper_config=helper_config,
        documents=repositories.get_document_repository(),
        chats=repositories.get_chat_repository(),
        embed_client=embed_client,
        rag_client=rag_client,
        llm_client=llm_client,
        cache=cache,
    )

    queue.start()
    await app.state.document_service.recover_unfinished()

    # while the app is running...
    yield

    # when the app shuts down, drain the queue before closing the clients it uses
    logging.info("Shutting down, draining queue and closing all clients...")
    await queue.shutdown(timeout=helper_config.get_number_val("QUEUE_SHUTDOWN_TIMEOUT", default=30))
    for client in http_clients:
        await client.close()
    await storage_client.close()
    await cache.close()
    logging.info("All clients closed.")


app = FastAPI(
    title="pdf_chat",
    description=(
        "Chat with your PDFs. Uploaded documents are extracted, chunked and embedded "
        "into a vector index by a background queue; questions are answered by a "
        "language model from the most similar chunks of one document."
    ),
    version=app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)
app.include_router(document_router)
app.include_router(chat_router)
app.include_router(queue_router)


@app.get("/health", tags=["health"])
async def health() -> HealthResponse:
    return HealthResponse(status="OK", version=app_version)


async def check_connections(clients: list[ClientInterface]) -> None:
    """Check connectivity to the embedding, vector index and language model backends.

    All three are required: without them nothing can be ingested or answered.

    Raises:
        PipelineError: The client's typed error if a backend is not reachable.
    """
    for client in clients:
        await client.do_healthcheck()
        logging.info("%s client '%s' is reachable.", client.get_client_type(), client.get_engine_name())


if __name__ == "__main__":
    import uvicorn

    logging.info(
        "Starting pdf_chat API Server v%s from root dir: %s on port 8000...",
        app_version,
        os.environ.get("ROOT_DIR", "unknown"),
    )
    uvicorn.run(app, host="0.0.0.0", port=8000)
