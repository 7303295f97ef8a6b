"""
Structured logging setup shared by every engine component.

Components bind a `component` key and log snake_case events, e.g.
`logger.bind(component="escalation_scheduler").info("escalation_fired", ...)`.
"""

import logging

import structlog

from alert_engine.config import LoggingConfig

_SHARED_PROCESSORS = [
    structlog.stdlib.filter_by_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    structlog.processors.UnicodeDecoder(),
]


def configure_logging(config: LoggingConfig | None = None) -> None:
    """Configure structlog; JSON by default, human-readable console when asked."""
    config = config or LoggingConfig()
    renderer = (
        structlog.dev.ConsoleRenderer()
        if config.format == "console"
        else structlog.processors.JSONRenderer()
    )
    logging.basicConfig(format="%(message)s", level=getattr(logging, config.level))
    logging.getLogger().setLevel(getattr(logging, config.level))
    structlog.configure(
        processors=[*_SHARED_PROCESSORS, renderer],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


# Production default; callers may reconfigure from AppConfig.logging
configure_logging()

logger = structlog.get_logger("alert_engine")
