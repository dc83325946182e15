from shared.clients.ClientManager import ClientManager
from shared.clients.storage.StorageClientInterface import StorageClientInterface


class StorageClientManager(ClientManager):
    """Builds the blob storage client named by STORAGE_ENGINE (default: local)."""

    client_type = "storage"
    class_prefix = "StorageClient"
    default_engine = "local"

    def get_client(self) -> StorageClientInterface:
        return self.client
