"""Filesystem storage backend.

Payloads live under ``{data_dir}/images/`` and all metadata lives in a single
JSON array at ``{data_dir}/metadata.json``. The array is read fully, appended
to and rewritten on every insert. The rewrite goes through a temp file and
``os.replace`` so readers never see a half-written file, and a lock
serialises writers inside this process. Writers in other processes can still
lose each other's updates (last writer wins on the whole file); use the aws
backend when more than one process writes.
"""
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from image_gallery.settings import settings
from image_gallery.storage.base import BlobExistsError, MetadataExistsError

log = logging.getLogger(__name__)

# -------------------------
# Local blob store
# -------------------------
class LocalBlobStore:
    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or settings.data_dir) / "images"
        self.root.mkdir(parents=True, exist_ok=True)
        log.info("Initialized local blob store at %s", self.root)

    def path_for(self, key: str) -> Path:
        return self.root / key

    def upload(self, fileobj, key: str, content_type: str):
        path = self.path_for(key)
        try:
            # "xb" fails instead of replacing an existing payload
            with open(path, "xb") as f:
                f.write(fileobj.read())
        except FileExistsError:
            raise BlobExistsError(key)
        log.debug("Wrote %s (%s) to %s", key, content_type, path)

    def download(self, key: str) -> Optional[bytes]:
        path = self.path_for(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            log.debug("Payload file not found: %s", path)
            return None

    def close(self):
        log.info("Closed local blob store")

# -------------------------
# JSON metadata store
# -------------------------
class JsonMetadataStore:
    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or settings.data_dir)
        self.root.mkdir(parents=True, exist_ok=True)
        self.path = self.root / "metadata.json"
        self._lock = threading.Lock()
        log.info("Initialized JSON metadata store at %s", self.path)

    def _read(self) -> List[Dict[str, Any]]:
        """Reads the whole collection. A missing file is an empty collection.

        Raises OSError if the file cannot be read and ValueError if it does
        not hold a JSON array.
        """
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        data = json.loads(raw)
        if not isinstance(data, list):
            raise ValueError(f"{self.path} does not contain a JSON array")
        return data

    def _write(self, items: List[Dict[str, Any]]):
        fd, tmp_path = tempfile.mkstemp(dir=self.root, prefix=".metadata-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(items, f, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def put_metadata(self, item: Dict[str, Any]):
        with self._lock:
            # An unreadable collection is never replaced, OSError/ValueError propagate
            items = self._read()
            if any(it.get("image_id") == item["image_id"] for it in items):
                raise MetadataExistsError(item["image_id"])
            items.append(item)
            self._write(items)
        log.debug("Inserted metadata %s", item.get("image_id"))

    def get_metadata(self, image_id: str) -> Optional[Dict[str, Any]]:
        for item in self._read():
            if item.get("image_id") == image_id:
                return item
        return None

    def scan_metadata(self) -> List[Dict[str, Any]]:
        # File order is insertion order
        return self._read()

    def close(self):
        log.info("Closed JSON metadata store")
