from __future__ import annotations

import asyncio
import logging

from kps.application.container import build_container
from kps.config import AppConfig, get_app_paths
from kps.logging_config import setup_logging
from kps.ui.console import ConsoleApp


def main() -> None:
    paths = get_app_paths()
    setup_logging(paths.logs_dir, level=logging.INFO)

    config = AppConfig.from_env()
    container = build_container(paths.db_path, config)

    app = ConsoleApp(container, exports_dir=paths.exports_dir)
    try:
        asyncio.run(app.run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
