"""
JSON File Storage Implementation

DESIGN DECISION: One file per key inside a data directory.
1. Documents stay human readable
2. No database setup required
3. Replacing a whole document is a single atomic rename

A write goes to a temporary file in the same directory which is then
moved over the target with os.replace. A crash mid-write leaves the
previous document intact.
"""

import os
import re
import tempfile
from pathlib import Path
from typing import Optional, Union

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from subtracker.services.storage.interface import KeyValueStoreInterface, StorageError


_SAFE_KEY = re.compile(r"^[A-Za-z0-9._-]+$")


class JsonFileStore(KeyValueStoreInterface):
    """Key-value store backed by `<data_dir>/<key>.json` files."""

    def __init__(self, data_dir: Union[str, Path]):
        self._data_dir = Path(data_dir)

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def _path_for(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise StorageError(f"Invalid storage key: {key!r}")
        return self._data_dir / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path_for(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Could not read '{key}': {e}") from e

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
        retry=retry_if_exception_type(OSError),
        reraise=True,
    )
    def _write_atomic(self, path: Path, value: str) -> None:
        self._data_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self._data_dir,
            prefix=f".{path.stem}.",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(value)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise

    def set(self, key: str, value: str) -> None:
        path = self._path_for(key)
        try:
            self._write_atomic(path, value)
        except OSError as e:
            raise StorageError(f"Could not write '{key}': {e}") from e

    def delete(self, key: str) -> None:
        path = self._path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(f"Could not delete '{key}': {e}") from e
