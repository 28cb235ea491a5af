from __future__ import annotations

import logging

from .settings import Settings, settings as default_settings


def setup_logging(settings: Settings = default_settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
