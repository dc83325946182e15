from redis.asyncio import Redis

from shared.helper.HelperConfig import HelperConfig
from shared.repositories.ChatRepositoryInterface import ChatRepositoryInterface
from shared.repositories.DocumentRepositoryInterface import DocumentRepositoryInterface
from shared.repositories.memory.ChatRepositoryMemory import ChatRepositoryMemory
from shared.repositories.memory.DocumentRepositoryMemory import DocumentRepositoryMemory
from shared.repositories.redis.ChatRepositoryRedis import ChatRepositoryRedis
from shared.repositories.redis.DocumentRepositoryRedis import DocumentRepositoryRedis


class RepositoryManager:
    """Builds the document and chat repositories for the engine named by STORE_ENGINE."""

    SUPPORTED_ENGINES = ("redis", "memory")

    def __init__(self, helper_config: HelperConfig, redis_client: Redis | None = None):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.engine = helper_config.get_string_val("STORE_ENGINE", default="redis").strip().lower()
        if self.engine not in self.SUPPORTED_ENGINES:
            raise ValueError(f"Unsupported store engine specified: '{self.engine}'.")
        if self.engine == "redis" and redis_client is None:
            raise ValueError("STORE_ENGINE=redis requires a Redis client.")
        self._redis = redis_client
        self.documents = self._initialize_documents()
        self.chats = self._initialize_chats()
        self.logging.debug("Instantiated repositories for store engine: %s", self.engine)

    def _initialize_documents(self) -> DocumentRepositoryInterface:
        if self.engine == "redis":
            return DocumentRepositoryRedis(helper_config=self.helper_config, redis_client=self._redis)
        return DocumentRepositoryMemory(helper_config=self.helper_config)

    def _initialize_chats(self) -> ChatRepositoryInterface:
        if self.engine == "redis":
            return ChatRepositoryRedis(helper_config=self.helper_config, redis_client=self._redis)
        return ChatRepositoryMemory(helper_config=self.helper_config)

    def get_document_repository(self) -> DocumentRepositoryInterface:
        return self.documents

    def get_chat_repository(self) -> ChatRepositoryInterface:
        return self.chats
