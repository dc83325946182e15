from typing import Any

from shared.helper.HelperConfig import HelperConfig


class ClientManager:
    """Instantiates the client of one type for the engine named in ``<TYPE>_ENGINE``.

    Engines are looked up by convention: type "rag" with engine "qdrant"
    resolves to ``shared.clients.rag.qdrant.RAGClientQdrant.RAGClientQdrant``.
    Subclasses set the type, the class name prefix and optionally a default engine.
    """

    client_type: str = ""
    class_prefix: str = ""
    default_engine: str | None = None

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.client = self._initialize_client()

    def _get_engine_from_env(self) -> str:
        """Capitalised engine name, e.g. "Ollama".

        Raises:
            ValueError: If no engine is configured and there is no default.
        """
        key = f"{self.client_type.upper()}_ENGINE"
        engine = self.helper_config.get_string_val(key, default=self.default_engine)
        if not engine or not engine.strip():
            raise ValueError(f"No {self.client_type} engine specified in configuration ({key}).")
        return engine.strip().lower().capitalize()

    def _initialize_client(self) -> Any:
        """
        Raises:
            ValueError: If the engine is unsupported or cannot be imported.
        """
        engine = self._get_engine_from_env()
        class_name = f"{self.class_prefix}{engine}"
        try:
            module = __import__(
                f"shared.clients.{self.client_type}.{engine.lower()}.{class_name}",
                fromlist=[class_name],
            )
            client_class = getattr(module, class_name)
        except (ImportError, AttributeError) as e:
            raise ValueError(f"Unsupported {self.client_type} engine specified: '{engine}'. Error: {e}")
        client = client_class(helper_config=self.helper_config)
        self.logging.debug("Instantiated %s client for engine: %s", self.client_type, engine)
        return client
