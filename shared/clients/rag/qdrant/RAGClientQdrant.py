from shared.helper.HelperConfig import HelperConfig
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorPoint import VectorMatch, VectorRecord
from shared.models.config import EnvConfig


class RAGClientQdrant(RAGClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")
        self._collection_name = self.get_config_val("COLLECTION", default="pdf_chunks", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Qdrant"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default=None),
            EnvConfig(env_key="API_KEY", val_type="string", default=""),
            EnvConfig(env_key="COLLECTION", val_type="string", default="pdf_chunks")
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        if self._api_key:
            return {"api-key": f"{self._api_key}"}
        else:
            return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/healthz"

    def _get_endpoint_points(self) -> str:
        return f"/collections/{self._collection_name}/points?wait=true"

    def _get_endpoint_search(self) -> str:
        return f"/collections/{self._collection_name}/points/search"

    def _get_endpoint_delete_points(self) -> str:
        return f"/collections/{self._collection_name}/points/delete?wait=true"

    def _get_endpoint_check_collection_existence(self) -> str:
        return f"/collections/{self._collection_name}/exists"

    def _get_endpoint_collection(self) -> str:
        return f"/collections/{self._collection_name}"

    def _get_endpoint_payload_index(self) -> str:
        return f"/collections/{self._collection_name}/index?wait=true"

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    def get_document_filter(self, pdf_id: str) -> dict:
        return {"must": [{"key": "pdf_id", "match": {"value": pdf_id}}]}

    def get_create_collection_payload(self, vector_size: int, distance: str) -> dict:
        return {"vectors": {"size": vector_size, "distance": distance}}

    def get_payload_index_payload(self, field_name: str) -> dict:
        return {"field_name": field_name, "field_schema": "keyword"}

    def get_upsert_payload(self, records: list[VectorRecord]) -> dict:
        return {
            "points": [
                {"id": record.id, "vector": record.vector, "payload": record.payload.model_dump()}
                for record in records
            ]
        }

    def get_search_payload(self, vector: list[float], filter: dict, limit: int) -> dict:
        return {
            "vector": vector,
            "filter": filter,
            "limit": limit,
            "with_payload": True,
            "with_vector": False,
        }

    def get_delete_ids_payload(self, ids: list[str]) -> dict:
        return {"points": ids}

    def get_delete_payload(self, filter: dict) -> dict:
        return {"filter": filter}

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def extract_search_results(self, raw_response: dict) -> list[VectorMatch]:
        matches: list[VectorMatch] = []
        for hit in raw_response.get("result", []):
            payload = hit.get("payload") or {}
            matches.append(
                VectorMatch(
                    id=str(hit.get("id")),
                    score=float(hit.get("score", 0.0)),
                    pdf_id=str(payload.get("pdf_id", "")),
                    text=payload.get("text", ""),
                    page_number=int(payload.get("page_number", 0)),
                    chunk_index=int(payload.get("chunk_index", 0)),
                )
            )
        return matches

    def extract_collection_vector_size(self, raw_response: dict) -> int | None:
        vectors = raw_response.get("result", {}).get("config", {}).get("params", {}).get("vectors", {})
        size = vectors.get("size") if isinstance(vectors, dict) else None
        return int(size) if size is not None else None
