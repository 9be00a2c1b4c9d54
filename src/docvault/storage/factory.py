"""Select the object store backend from settings."""

from typing import Callable

from docvault.core import get_logger
from docvault.core.config import Settings
from docvault.core.errors import ValidationError
from docvault.storage.local_store import LocalObjectStore
from docvault.storage.object_store import ObjectStore
from docvault.storage.s3_store import S3ObjectStore

logger = get_logger(__name__)

BACKENDS: dict[str, Callable[[Settings], ObjectStore]] = {
    "local": LocalObjectStore.from_settings,
    "s3": S3ObjectStore.from_settings,
}


def create_object_store(settings: Settings) -> ObjectStore:
    """Build the configured backend.

    Args:
        settings: Settings whose ``storage_provider`` names the backend.

    Returns:
        The object store instance.

    Raises:
        ValidationError: If the provider is unknown.
    """
    provider = (settings.storage_provider or "").lower()
    builder = BACKENDS.get(provider)
    if builder is None:
        raise ValidationError(
            f"Unknown storage provider: {settings.storage_provider!r}",
            failed_checks=["storage_provider"],
        )
    store = builder(settings)
    logger.info("object_store_selected", provider=provider)
    return store
