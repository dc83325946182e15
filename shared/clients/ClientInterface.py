from abc import ABC, abstractmethod
from typing import Any

import httpx
from httpx._types import QueryParamTypes, RequestContent, RequestData, RequestFiles

from shared.exceptions import PipelineError
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class ClientInterface(ABC):
    """Base for every HTTP backend client (embedding, vector index, language model).

    Subclasses name their type and engine; configuration keys are derived
    from both, e.g. ``RAG_QDRANT_BASE_URL``. Every failure surfaces as the
    subclass's PipelineError type so callers never see raw httpx errors.
    """

    def __init__(self, helper_config: HelperConfig):
        self.logging = helper_config.get_logger()
        self._helper_config = helper_config
        self.timeout = helper_config.get_number_val(f"{self.get_client_type().upper()}_TIMEOUT", default=30.0)

        self._client: httpx.AsyncClient | None = None
        # fail on startup, not on the first upload
        self.validate_full_configuration()

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def validate_full_configuration(self) -> None:
        """Read every required key once.

        Raises:
            ValueError: If a required key is missing or cannot be parsed.
        """
        for config in self._get_required_config():
            self.get_config_val(raw_key=config.env_key, default=config.default, val_type=config.val_type)

    def is_booted(self) -> bool:
        return self._client is not None

    ##########################################
    ################ GETTER ##################
    ##########################################

    def get_client_type(self) -> str:
        """Lowercase client type, e.g. "embed"."""
        return self._get_client_type().lower()

    def get_engine_name(self) -> str:
        """Lowercase engine name, e.g. "qdrant"."""
        return self._get_engine_name().lower()

    @abstractmethod
    def _get_client_type(self) -> str:
        pass

    @abstractmethod
    def _get_engine_name(self) -> str:
        pass

    @abstractmethod
    def _get_error_class(self) -> type[PipelineError]:
        """Exception type raised when a request of this client fails, e.g. EmbeddingError."""
        pass

    ################ CONFIG ##################
    @abstractmethod
    def _get_required_config(self) -> list[EnvConfig]:
        pass

    def _get_config_key_name(self, raw_key: str) -> str:
        return f"{self.get_client_type().upper()}_{self.get_engine_name().upper()}_{raw_key.upper()}"

    def get_config_val(self, raw_key: str, default: Any = None, val_type: str = "string") -> Any:
        """Read an engine scoped configuration value.

        Args:
            raw_key (str): Key without prefix, e.g. "BASE_URL".
            default (Any): Fallback; None makes the key required.
            val_type (str): One of "string", "number", "bool", "list".

        Returns:
            Any: The parsed value.
        """
        readers = {
            "string": self._helper_config.get_string_val,
            "number": self._helper_config.get_number_val,
            "bool": self._helper_config.get_bool_val,
            "list": self._helper_config.get_list_val,
        }
        reader = readers.get(val_type)
        if reader is None:
            raise ValueError(
                f"Unsupported config value type '{val_type}' for '{raw_key}' "
                f"in {self.get_client_type()} client '{self.get_engine_name()}'."
            )
        return reader(self._get_config_key_name(raw_key), default=default)

    ################ AUTH ##################
    @abstractmethod
    def _get_auth_header(self) -> dict:
        """Headers authenticating against the backend; empty if no key is configured."""
        pass

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_base_url(self) -> str:
        pass

    @abstractmethod
    def _get_endpoint_healthcheck(self) -> str:
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_healthcheck(self) -> httpx.Response:
        """Ping the backend; raises the client's error type if it does not answer 2xx."""
        return await self.do_request(method="GET", endpoint=self._get_endpoint_healthcheck(), raise_on_error=True)

    ##########################################
    ############ CORE REQUESTS ###############
    ##########################################

    async def boot(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        """Open the HTTP client. Tests pass an httpx.MockTransport."""
        self._client = httpx.AsyncClient(timeout=self.timeout, transport=transport)

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def do_request(
        self,
        method: str = "GET",
        content: RequestContent | None = None,
        data: RequestData | None = None,
        files: RequestFiles | None = None,
        json: dict | None = None,
        params: QueryParamTypes | None = None,
        endpoint: str = "",
        additional_headers: dict | None = None,
        raise_on_error: bool = False,
    ) -> httpx.Response:
        """Send one request to the backend.

        Only the first of content, data, files and json that is set is sent
        as the body. Raw content needs its Content-Type in additional_headers.

        Args:
            method (str): HTTP verb.
            endpoint (str): Path below the base URL.
            additional_headers (dict | None): Merged over the auth header.
            raise_on_error (bool): Treat a non-2xx status as a failure.

        Returns:
            httpx.Response: The backend response.

        Raises:
            PipelineError: The client's error type if it is not booted, the
                transport fails, or raise_on_error is set and the status is not 2xx.
        """
        error_class = self._get_error_class()
        if self._client is None:
            raise error_class("HTTP client not initialised. Call boot() before making requests.")

        path = endpoint.strip().lstrip("/")
        url = f"{self._get_base_url().rstrip('/')}/{path}" if path else self._get_base_url().rstrip("/")
        headers = {**self._get_auth_header(), **(additional_headers or {})}

        body: dict = {}
        for name, value in (("content", content), ("data", data), ("files", files), ("json", json)):
            if value is not None:
                body[name] = value
                break

        try:
            response = await self._client.request(method, url, headers=headers, params=params, timeout=self.timeout, **body)
        except httpx.HTTPError as e:
            self.logging.error("Request to %s failed: %s", url, e)
            raise error_class(f"Request to {url} failed: {e}") from e

        if raise_on_error and not response.is_success:
            self.logging.error("Request to %s failed with status %d: %s", url, response.status_code, response.text[:200])
            raise error_class(f"Request to {url} failed with status {response.status_code}")

        return response

    def parse_json(self, response: httpx.Response) -> Any:
        """Decode a response body, raising the client's error type if it is not JSON."""
        try:
            return response.json()
        except ValueError as e:
            self.logging.error("Invalid JSON from %s: %s", response.request.url, response.text[:200])
            raise self._get_error_class()(
                f"{self.get_client_type()} backend returned an invalid JSON body: {e}"
            ) from e
