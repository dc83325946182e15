"""Local filesystem implementation of StorageClientInterface."""

import asyncio
import re
import time
from pathlib import Path, PurePosixPath

from shared.clients.storage.StorageClientInterface import StorageClientInterface, StoredBlob
from shared.helper.HelperConfig import HelperConfig

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def _safe_segment(value: str) -> str:
    cleaned = _UNSAFE_CHARS.sub("_", value).strip("._")
    return cleaned or "file"


class StorageClientLocal(StorageClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._root = Path(helper_config.get_string_val("STORAGE_LOCAL_ROOT_DIR", default="./local_storage")).resolve()
        self._public_base_url = helper_config.get_string_val("STORAGE_LOCAL_PUBLIC_URL", default="")

    def _get_engine_name(self) -> str:
        return "Local"

    def _path_for(self, public_id: str) -> Path:
        path = (self._root / PurePosixPath(public_id)).resolve()
        if self._root not in path.parents:
            raise ValueError(f"Public id '{public_id}' points outside the storage root.")
        return path

    async def boot(self) -> None:
        self._root.mkdir(parents=True, exist_ok=True)

    async def do_store(self, data: bytes, name: str, owner_id: str) -> StoredBlob:
        stem = _safe_segment(PurePosixPath(name).stem)
        public_id = f"pdfs/{_safe_segment(owner_id)}/{int(time.time() * 1000)}_{stem}.pdf"
        path = self._path_for(public_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(path.write_bytes, data)
        self.logging.info("PDF stored locally: %s", public_id)
        return StoredBlob(url=self.get_url(public_id), public_id=public_id, bytes=len(data))

    async def do_fetch(self, public_id: str) -> bytes:
        path = self._path_for(public_id)
        if not path.exists():
            raise FileNotFoundError(f"No stored file for '{public_id}'.")
        return await asyncio.to_thread(path.read_bytes)

    async def do_delete(self, public_id: str) -> None:
        path = self._path_for(public_id)
        await asyncio.to_thread(path.unlink, True)
        self.logging.info("PDF deleted from local storage: %s", public_id)

    def get_url(self, public_id: str) -> str:
        if self._public_base_url:
            return f"{self._public_base_url.rstrip('/')}/{public_id}"
        return self._path_for(public_id).as_uri()
