import logging

from bizplan.core.config import settings, validate_settings_for_production
from bizplan.core.logging import setup_logging
from bizplan.core.sentry import init_sentry
from bizplan.gateway.scheduler import RequestScheduler
from bizplan.gateway.upstream import BaseUpstreamClient

logger = logging.getLogger(__name__)


def bootstrap(validate: bool = True, upstream: BaseUpstreamClient | None = None) -> RequestScheduler:
    """Process start-up: logging, Sentry, settings check, and the one scheduler.

    The returned scheduler is meant to be created once and handed to every
    caller that generates plan content.
    """
    setup_logging()
    init_sentry()
    if validate:
        validate_settings_for_production()

    scheduler = RequestScheduler.from_settings(settings, upstream=upstream)
    logger.info(
        "Request gateway ready (model=%s, rpm=%d, max_retries=%d)",
        scheduler.config.default_model,
        scheduler.config.rate_capacity,
        scheduler.config.max_retries,
    )
    return scheduler
