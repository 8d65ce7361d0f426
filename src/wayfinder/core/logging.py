"""
Logging configuration.

The packaged `config/logging.yaml` is applied with `dictConfig`; `app.log_level`
(or WAYFINDER_LOG_LEVEL) sets the root and console level. Third-party loggers declared
in the YAML (httpx, httpcore) keep their own level so provider traffic stays quiet.
"""

from __future__ import annotations

import copy
import logging.config

from wayfinder.config.settings import get_logging_config, get_settings


def configure_logging() -> None:
    level = get_settings().app.log_level.upper()
    config = copy.deepcopy(get_logging_config())

    config.setdefault("root", {})["level"] = level
    console = config.get("handlers", {}).get("console")
    if isinstance(console, dict):
        console["level"] = level
    config.setdefault("loggers", {}).setdefault("wayfinder", {})["level"] = level

    logging.config.dictConfig(config)
