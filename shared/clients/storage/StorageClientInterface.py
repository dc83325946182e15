from abc import ABC, abstractmethod

from pydantic import BaseModel

from shared.helper.HelperConfig import HelperConfig


class StoredBlob(BaseModel):
    """Where an uploaded file ended up."""

    url: str
    public_id: str
    bytes: int


class StorageClientInterface(ABC):
    """Blob storage for the original PDF uploads.

    The original file is kept so that a failed ingestion can be retried
    without the client uploading it again.
    """

    def __init__(self, helper_config: HelperConfig):
        self.logging = helper_config.get_logger()
        self._helper_config = helper_config

    def get_engine_name(self) -> str:
        return self._get_engine_name().lower()

    @abstractmethod
    def _get_engine_name(self) -> str:
        pass

    async def boot(self) -> None:
        """Prepare the backend. Default: nothing to do."""

    async def close(self) -> None:
        """Release backend resources. Default: nothing to do."""

    @abstractmethod
    async def do_store(self, data: bytes, name: str, owner_id: str) -> StoredBlob:
        """Persist a file.

        Args:
            data (bytes): Raw file content.
            name (str): Original file name.
            owner_id (str): Owner, used to group files.

        Returns:
            StoredBlob: URL and public id of the stored file.
        """
        pass

    @abstractmethod
    async def do_fetch(self, public_id: str) -> bytes:
        """Read a stored file back.

        Raises:
            FileNotFoundError: If no file exists under public_id.
        """
        pass

    @abstractmethod
    async def do_delete(self, public_id: str) -> None:
        """Remove a stored file. Removing a missing file is not an error."""
        pass

    @abstractmethod
    def get_url(self, public_id: str) -> str:
        """Return the URL under which the file is reachable."""
        pass
