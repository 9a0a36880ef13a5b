import logging
from typing import Optional

from .config import Settings, get_settings
from .db import dispose_engine, get_engine, get_session_factory, init_db
from .repository import InventoryRepository
from .telemetry import configure_telemetry

logger = logging.getLogger(__name__)


def build_repository(settings: Optional[Settings] = None, create_tables: bool = True) -> InventoryRepository:
    settings = settings or get_settings()
    if settings.otel_enabled:
        configure_telemetry(settings)

    # drop any engine cached for an earlier configuration
    dispose_engine()
    engine = get_engine(settings)
    if create_tables:
        init_db(engine)
    logger.info("inventory.ready", extra={"app": settings.app_name, "version": settings.version})
    return InventoryRepository(get_session_factory(), default_page_size=settings.default_page_size)
