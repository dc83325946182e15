from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.exceptions import EmbeddingError
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class EmbedClientOllama(EmbedClientInterface):
    """Embeddings from a local or proxied Ollama server.

    Config:
        EMBED_OLLAMA_BASE_URL:    Server URL, required.
        EMBED_OLLAMA_API_KEY:     Bearer token for an authenticating proxy.
        EMBED_OLLAMA_KEEP_ALIVE:  How long Ollama keeps the model loaded between batches.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")
        self._keep_alive = self.get_config_val("KEEP_ALIVE", default="5m", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    def _get_engine_name(self) -> str:
        return "Ollama"

    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default=None),
            EnvConfig(env_key="API_KEY", val_type="string", default=""),
            EnvConfig(env_key="KEEP_ALIVE", val_type="string", default="5m"),
        ]

    def _get_auth_header(self) -> dict:
        return {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        # "Ollama is running" on the root path
        return ""

    def get_endpoint_embedding(self) -> str:
        return "/api/embed"

    def get_endpoint_model_details(self) -> str:
        return "/api/show"

    ################ PAYLOAD BUILDER ##################
    def get_embed_payload(self, texts: list[str]) -> dict:
        # chunks are already cut to EMBED_MODEL_MAX_CHARS; let Ollama trim what still exceeds the context
        return {"model": self.embed_model, "input": texts, "truncate": True, "keep_alive": self._keep_alive}

    ##########################################
    ################# PARSER #################
    ##########################################

    def extract_vector_size_from_model_info(self, model_info: dict) -> int:
        """Read ``<architecture>.embedding_length`` from an /api/show reply.

        Falls back to any ``*.embedding_length`` key when the architecture is
        not reported.
        """
        details: dict = model_info.get("model_info") or {}
        architecture = details.get("general.architecture")
        if architecture and f"{architecture}.embedding_length" in details:
            return int(details[f"{architecture}.embedding_length"])
        sizes = [int(value) for key, value in details.items() if key.endswith(".embedding_length")]
        if not sizes:
            raise EmbeddingError(f"Ollama reports no embedding dimension for model {self.embed_model}.")
        return sizes[0]

    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        embeddings = response_data.get("embeddings") if isinstance(response_data, dict) else None
        if not isinstance(embeddings, list) or not embeddings:
            raise EmbeddingError(f"Ollama embed reply for {self.embed_model} holds no vectors.")
        if any(not vector for vector in embeddings):
            raise EmbeddingError(f"Ollama returned an empty vector for model {self.embed_model}.")
        return embeddings
