from abc import abstractmethod

import httpx
from shared.clients.ClientInterface import ClientInterface
from shared.clients.rag.models.VectorPoint import VectorMatch, VectorRecord
from shared.exceptions import PipelineError, VectorIndexError
import json

from shared.helper.HelperConfig import HelperConfig


class RAGClientInterface(ClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self.vector_size = helper_config.get_int_val("RAG_VECTOR_SIZE", default=768, minimum=1)
        self.distance = helper_config.get_string_val("RAG_DISTANCE", default="Cosine")
        self.upsert_batch_size = helper_config.get_int_val("RAG_UPSERT_BATCH_SIZE", default=100, minimum=1)
        self.delete_batch_size = helper_config.get_int_val("RAG_DELETE_BATCH_SIZE", default=1000, minimum=1)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "rag"
        """
        return "rag"

    def _get_error_class(self) -> type[PipelineError]:
        return VectorIndexError

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_points(self) -> str:
        """
        Returns the endpoint path for points upsert requests (e.g. "/collections/my_col/points").
        """
        pass

    @abstractmethod
    def _get_endpoint_search(self) -> str:
        """
        Returns the endpoint path for similarity search requests (e.g. "/collections/my_col/points/search").
        """
        pass

    @abstractmethod
    def _get_endpoint_delete_points(self) -> str:
        """
        Returns the endpoint path for deleting points by id or filter (e.g. "/collections/my_col/points/delete").
        """
        pass

    @abstractmethod
    def _get_endpoint_check_collection_existence(self) -> str:
        """
        Returns the endpoint path for collection existence check requests.
        """
        pass

    @abstractmethod
    def _get_endpoint_collection(self) -> str:
        """
        Returns the endpoint path for creating and describing the collection.
        """
        pass

    @abstractmethod
    def _get_endpoint_payload_index(self) -> str:
        """
        Returns the endpoint path for creating a payload (metadata) index.
        """
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_document_filter(self, pdf_id: str) -> dict:
        """
        Builds the backend-specific filter that matches every point of one document.

        Args:
            pdf_id (str): The document id.

        Returns:
            dict: The filter.
        """
        pass

    @abstractmethod
    def get_create_collection_payload(self, vector_size: int, distance: str) -> dict:
        """Builds the payload for creating the collection."""
        pass

    @abstractmethod
    def get_payload_index_payload(self, field_name: str) -> dict:
        """Builds the payload for indexing a keyword metadata field."""
        pass

    @abstractmethod
    def get_upsert_payload(self, records: list[VectorRecord]) -> dict:
        """Builds the payload for upserting a batch of points."""
        pass

    @abstractmethod
    def get_search_payload(self, vector: list[float], filter: dict, limit: int) -> dict:
        """
        Builds the payload for a top-K similarity search.

        Args:
            vector (list[float]): The query vector.
            filter (dict): Filter to scope the search with.
            limit (int): Maximum number of matches.

        Returns:
            dict: The payload for the search request.
        """
        pass

    @abstractmethod
    def get_delete_ids_payload(self, ids: list[str]) -> dict:
        """Builds the payload for deleting points by id."""
        pass

    @abstractmethod
    def get_delete_payload(self, filter: dict) -> dict:
        """Builds the payload for a filter-based delete."""
        pass

    ################ RESPONSE PARSER ##################
    @abstractmethod
    def extract_search_results(self, raw_response: dict) -> list[VectorMatch]:
        """
        Extracts the matches from a raw search response.

        Args:
            raw_response (dict): The raw JSON response from the search endpoint.

        Returns:
            list[VectorMatch]: Matches as returned by the backend.
        """
        pass

    @abstractmethod
    def extract_collection_vector_size(self, raw_response: dict) -> int | None:
        """Extracts the configured vector dimension from a collection description."""
        pass

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def _validate_dimensions(self, records: list[VectorRecord]) -> None:
        """Reject vectors whose dimension differs from the collection's.

        Raises:
            VectorIndexError: On the first mismatching vector.
        """
        for record in records:
            if len(record.vector) != self.vector_size:
                raise VectorIndexError(
                    "Vector %s has dimension %d but the index expects %d."
                    % (record.id, len(record.vector), self.vector_size)
                )

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_existence_check(self) -> bool:
        """Check if the collection exists in the rag backend.

        Returns:
            bool: True if the collection exists, False otherwise.
        """
        resp = await self.do_request(method="GET", endpoint=self._get_endpoint_check_collection_existence(), raise_on_error=True)
        return bool(self.parse_json(resp).get("result", {}).get("exists"))

    async def do_create_collection(self, vector_size: int | None = None, distance: str | None = None) -> httpx.Response:
        """Create the collection in the rag backend.

        Args:
            vector_size (int | None): The size of the vectors, defaults to RAG_VECTOR_SIZE.
            distance (str | None): The distance metric, defaults to RAG_DISTANCE.

        Returns:
            httpx.Response: The response from the create collection request.
        """
        return await self.do_request(
            method="PUT",
            json=self.get_create_collection_payload(vector_size or self.vector_size, distance or self.distance),
            endpoint=self._get_endpoint_collection(),
            raise_on_error=True,
        )

    async def do_create_payload_index(self, field_name: str) -> httpx.Response:
        """Index a metadata field so filtered queries stay fast."""
        return await self.do_request(
            method="PUT",
            json=self.get_payload_index_payload(field_name),
            endpoint=self._get_endpoint_payload_index(),
            raise_on_error=True,
        )

    async def do_fetch_collection_vector_size(self) -> int | None:
        """Read the vector dimension the collection was created with."""
        resp = await self.do_request(method="GET", endpoint=self._get_endpoint_collection(), raise_on_error=True)
        return self.extract_collection_vector_size(self.parse_json(resp))

    async def do_ensure_collection(self, embedding_size: int | None = None) -> None:
        """Create the collection and its pdf_id index if missing, and verify its dimension.

        Args:
            embedding_size (int | None): Dimension the embedding model reports.
                When given it must equal RAG_VECTOR_SIZE.

        Raises:
            VectorIndexError: If the embedding model or an existing collection
                has a different dimension.
        """
        if embedding_size is not None and embedding_size != self.vector_size:
            raise VectorIndexError(
                "Embedding model produces %d-dimensional vectors but RAG_VECTOR_SIZE=%d; every write would fail."
                % (embedding_size, self.vector_size)
            )
        if not await self.do_existence_check():
            self.logging.info("Creating collection on %s (size=%d, distance=%s)", self.get_engine_name(), self.vector_size, self.distance)
            await self.do_create_collection()
            await self.do_create_payload_index("pdf_id")
            return
        existing_size = await self.do_fetch_collection_vector_size()
        if existing_size is not None and existing_size != self.vector_size:
            raise VectorIndexError(
                "Collection dimension %d does not match RAG_VECTOR_SIZE=%d; every write would fail."
                % (existing_size, self.vector_size)
            )

    async def do_upsert_points(self, records: list[VectorRecord]) -> httpx.Response:
        """Upsert a single batch of points.
        Inserts new points or replaces existing ones if a point with the same ID already exists.

        Args:
            records (list[VectorRecord]): The points to upsert.

        Returns:
            httpx.Response: The response from the upsert request.
        """
        return await self.do_request(
            method="PUT",
            content=json.dumps(self.get_upsert_payload(records)),
            endpoint=self._get_endpoint_points(),
            additional_headers={"Content-Type": "application/json"},
            raise_on_error=True,
        )

    async def do_upsert(self, records: list[VectorRecord]) -> list[str]:
        """Upsert points in batches of at most upsert_batch_size.

        Batches are not atomic as a whole: if a later batch fails, earlier
        batches stay committed.

        Args:
            records (list[VectorRecord]): All points to write.

        Returns:
            list[str]: The ids of the written points, in input order.

        Raises:
            VectorIndexError: On a dimension mismatch or a failed batch.
        """
        self._validate_dimensions(records)
        for batch_start in range(0, len(records), self.upsert_batch_size):
            batch = records[batch_start: batch_start + self.upsert_batch_size]
            await self.do_upsert_points(batch)
        self.logging.debug("Upserted %d points into %s", len(records), self.get_engine_name())
        return [record.id for record in records]

    async def do_query(self, vector: list[float], pdf_id: str, top_k: int = 5) -> list[VectorMatch]:
        """Return up to top_k matches of one document, best first.

        Args:
            vector (list[float]): The query vector.
            pdf_id (str): The document to scope the search to.
            top_k (int): Maximum number of matches.

        Returns:
            list[VectorMatch]: Matches ordered by descending score; empty if the
                document has no vectors.

        Raises:
            VectorIndexError: If the search request fails.
        """
        resp = await self.do_request(
            method="POST",
            content=json.dumps(self.get_search_payload(vector, self.get_document_filter(pdf_id), top_k)),
            endpoint=self._get_endpoint_search(),
            additional_headers={"Content-Type": "application/json"},
            raise_on_error=True,
        )
        matches = self.extract_search_results(self.parse_json(resp))
        scoped = [match for match in matches if match.pdf_id == pdf_id]
        if len(scoped) != len(matches):
            self.logging.warning(
                "Dropped %d matches outside document %s returned by %s",
                len(matches) - len(scoped), pdf_id, self.get_engine_name(),
            )
        scoped.sort(key=lambda match: match.score, reverse=True)
        return scoped[:top_k]

    async def do_delete_by_ids(self, ids: list[str]) -> None:
        """Delete points by id in batches of at most delete_batch_size.

        Args:
            ids (list[str]): The point ids to delete.
        """
        for batch_start in range(0, len(ids), self.delete_batch_size):
            batch = ids[batch_start: batch_start + self.delete_batch_size]
            await self.do_request(
                method="POST",
                content=json.dumps(self.get_delete_ids_payload(batch)),
                endpoint=self._get_endpoint_delete_points(),
                additional_headers={"Content-Type": "application/json"},
                raise_on_error=True,
            )
        self.logging.info("Deleted %d vectors from %s", len(ids), self.get_engine_name())

    async def do_delete_by_document(self, pdf_id: str) -> None:
        """Delete every point of a document by metadata filter.

        Args:
            pdf_id (str): The document whose vectors are removed.
        """
        await self.do_request(
            method="POST",
            content=json.dumps(self.get_delete_payload(self.get_document_filter(pdf_id))),
            endpoint=self._get_endpoint_delete_points(),
            additional_headers={"Content-Type": "application/json"},
            raise_on_error=True,
        )
        self.logging.info("Deleted all vectors for document %s from %s", pdf_id, self.get_engine_name())
