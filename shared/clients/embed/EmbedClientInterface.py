from abc import abstractmethod

from shared.clients.ClientInterface import ClientInterface
from shared.exceptions import EmbeddingError, PipelineError
from shared.helper.HelperConfig import HelperConfig


class EmbedClientInterface(ClientInterface):
    """Turns texts into vectors with the configured embedding model.

    Config (besides the engine scoped keys):
        EMBED_MODEL:            Model name, required.
        EMBED_MODEL_MAX_CHARS:  Inputs are cut to this many characters; 0 disables.
        EMBED_DISTANCE:         Distance metric reported to the vector index.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        prefix = self.get_client_type().upper()
        self.embed_model = helper_config.get_string_val(f"{prefix}_MODEL")
        self.embed_model_max_chars = int(helper_config.get_number_val(f"{prefix}_MODEL_MAX_CHARS", default=0))
        self.embed_distance = helper_config.get_string_val(f"{prefix}_DISTANCE", default="Cosine")

    ##########################################
    ################ GETTER ##################
    ##########################################

    def _get_client_type(self) -> str:
        return "embed"

    def _get_error_class(self) -> type[PipelineError]:
        return EmbeddingError

    ################ ENDPOINTS ##################
    @abstractmethod
    def get_endpoint_embedding(self) -> str:
        pass

    @abstractmethod
    def get_endpoint_model_details(self) -> str:
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_embed_payload(self, texts: list[str]) -> dict:
        """Backend specific request body embedding all texts at once."""
        pass

    ##########################################
    ################# PARSER #################
    ##########################################

    @abstractmethod
    def extract_vector_size_from_model_info(self, model_info: dict) -> int:
        """
        Raises:
            EmbeddingError: If the model details carry no dimension.
        """
        pass

    @abstractmethod
    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """
        Raises:
            EmbeddingError: If the response holds no vectors.
        """
        pass

    def _truncate(self, text: str) -> str:
        return text[:self.embed_model_max_chars] if self.embed_model_max_chars > 0 else text

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_fetch_embedding_vector_size(self) -> tuple[int, str]:
        """Dimension and distance metric of the configured model, used to create the collection."""
        response = await self.do_request(
            method="POST",
            json={"name": self.embed_model},
            endpoint=self.get_endpoint_model_details(),
            raise_on_error=True,
        )
        return self.extract_vector_size_from_model_info(model_info=self.parse_json(response)), self.embed_distance

    async def do_embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed several texts in one request.

        One vector per text, in input order. Failures are not retried here;
        the ingestion job owns the retry policy.

        Args:
            texts (list[str]): The texts to embed.

        Returns:
            list[list[float]]: The vectors.

        Raises:
            EmbeddingError: If the request fails or the provider answers with
                a different number of vectors.
        """
        if not texts:
            return []
        response = await self.do_request(
            method="POST",
            endpoint=self.get_endpoint_embedding(),
            json=self.get_embed_payload([self._truncate(text) for text in texts]),
        )
        if response.status_code != 200:
            self.logging.error("Embedding request failed: status %d, body: %s", response.status_code, response.text[:200])
            raise EmbeddingError(f"Embedding request failed with status {response.status_code}.")

        embeddings = self.extract_embeddings_from_response(self.parse_json(response))
        if len(embeddings) != len(texts):
            raise EmbeddingError(f"Embedding provider returned {len(embeddings)} vectors for {len(texts)} texts.")
        return embeddings

    async def do_embed(self, text: str) -> list[float]:
        return (await self.do_embed_batch([text]))[0]
