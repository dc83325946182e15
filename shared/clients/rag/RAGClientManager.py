from shared.clients.ClientManager import ClientManager
from shared.clients.rag.RAGClientInterface import RAGClientInterface


class RAGClientManager(ClientManager):
    """Builds the vector index client named by RAG_ENGINE."""

    client_type = "rag"
    class_prefix = "RAGClient"

    def get_client(self) -> RAGClientInterface:
        return self.client
