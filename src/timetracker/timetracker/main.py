from __future__ import annotations

import importlib
from pathlib import Path
from typing import Optional

import structlog
from dotenv import load_dotenv
from flask import Flask

from config import get_settings_module

from .attendance.controller import register as register_attendance
from .container import Container, build_container
from .core.logging import setup_logging
from .database.bootstrap import apply_schema, list_tables
from .sessions.controller import register as register_sessions

log = structlog.get_logger(__name__)


def create_app(container: Optional[Container] = None) -> Flask:
    load_dotenv(override=False)
    app = Flask(__name__)

    settings_module = get_settings_module()
    settings = importlib.import_module(settings_module)
    app.secret_key = getattr(settings, "SECRET_KEY")
    app.config["DEBUG"] = bool(getattr(settings, "DEBUG", False))
    app.config["TESTING"] = bool(getattr(settings, "TESTING", False))
    setup_logging(getattr(settings, "LOG_LEVEL", None))

    if container is None:
        db_config = getattr(settings, "DB_CONFIG")
        container = build_container(
            db_config=db_config,
            store_timeout=float(getattr(settings, "STORE_TIMEOUT_SECONDS", 10)),
            read_attempts=int(getattr(settings, "STORE_READ_ATTEMPTS", 3)),
            retry_delay=float(getattr(settings, "STORE_RETRY_DELAY_SECONDS", 0.5)),
            tick_interval=float(getattr(settings, "TICK_INTERVAL_SECONDS", 1.0)),
        )
        log.info(
            "app_configured",
            settings=settings_module,
            db=f"{db_config.get('user')}@{db_config.get('host')}:{db_config.get('port', 3306)}/{db_config.get('database')}",
        )

        if bool(getattr(settings, "AUTO_INIT_DB", False)) and container.conn is not None:
            schema_path = Path(__file__).resolve().parents[3] / "database" / "schema.sql"
            apply_schema(container.conn, schema_path=schema_path)
            log.info("schema_ready", tables=len(list_tables(container.conn)))

    app.extensions["timetracker"] = container

    register_sessions(app, container)
    register_attendance(app, container)

    return app
