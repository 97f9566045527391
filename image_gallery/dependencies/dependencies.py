from fastapi import Request
from image_gallery.storage.base import BlobStore, MetadataStore

def get_blob_store(request: Request) -> BlobStore:
    """Dependency provider for the payload store"""
    return request.app.state.blobs

def get_metadata_store(request: Request) -> MetadataStore:
    """Dependency provider for the metadata store"""
    return request.app.state.db
