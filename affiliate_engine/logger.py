"""
Простое логирование без structlog.
Все логи идут в stdout.
"""

import logging
import sys

from affiliate_engine.config import get_settings


def setup_logging():
    """Инициализация логирования"""
    settings = get_settings()

    root_logger = logging.getLogger()
    root_logger.setLevel(settings.log_level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(settings.log_level)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    handler.setFormatter(formatter)

    if not root_logger.handlers:
        root_logger.addHandler(handler)


# Логгеры по компонентам
log_api = logging.getLogger("api")
log_webhook = logging.getLogger("webhook")
log_db = logging.getLogger("db")
log_service = logging.getLogger("service")
log_notify = logging.getLogger("notify")
