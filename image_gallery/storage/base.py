"""Contracts for the two storage halves behind the asset store.

A blob store keeps one payload per image ID, a metadata store keeps one
entry per image ID. Both refuse to overwrite an existing ID.
"""
from typing import Any, Dict, List, Optional, Protocol


class BlobExistsError(Exception):
    """Raised when a payload would overwrite an existing one."""
    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Payload already exists: {key}")


class MetadataExistsError(Exception):
    """Raised when a metadata entry for the ID is already present."""
    def __init__(self, image_id: str):
        self.image_id = image_id
        super().__init__(f"Metadata already exists: {image_id}")


class BlobStore(Protocol):
    def upload(self, fileobj, key: str, content_type: str) -> None:
        """Write a new payload, raising BlobExistsError if key is taken."""
        ...

    def download(self, key: str) -> Optional[bytes]:
        """Return the payload, or None when it does not exist."""
        ...

    def close(self) -> None:
        ...


class MetadataStore(Protocol):
    def put_metadata(self, item: Dict[str, Any]) -> None:
        """Insert a new entry, raising MetadataExistsError if the ID is taken."""
        ...

    def get_metadata(self, image_id: str) -> Optional[Dict[str, Any]]:
        ...

    def scan_metadata(self) -> List[Dict[str, Any]]:
        """Return every entry in creation order."""
        ...

    def close(self) -> None:
        ...
