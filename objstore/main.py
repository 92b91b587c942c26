import logging

from objstore.common.config import Settings, get_settings
from objstore.common.logging import setup_logging
from objstore.infra.storage.s3_client import S3ObjectStorage


def create_storage(
    settings: Settings | None = None, *, connect: bool = True
) -> S3ObjectStorage:
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL)
    storage = S3ObjectStorage.from_settings(settings)
    if connect:
        storage.connect()
    logging.getLogger("objstore.startup").info(
        "storage ready endpoint=%s region=%s metrics=%s connected=%s",
        settings.S3_ENDPOINT.strip(),
        storage.region or "-",
        settings.ENABLE_METRICS,
        storage.is_connected,
    )
    return storage
