from pathlib import Path
from typing import BinaryIO


class StorageProvider:
    def exists(self, key: str) -> bool:
        raise NotImplementedError

    def copy_in(self, src_stream: BinaryIO, key: str) -> int:
        """Store ``src_stream`` under ``key``; returns the number of bytes written."""
        raise NotImplementedError

    def local_path(self, key: str) -> Path:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        """Remove ``key``. Deleting a missing key is not an error."""
        raise NotImplementedError
