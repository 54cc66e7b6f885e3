"""Application entry point for the QuizAdmin service."""

from __future__ import annotations

import signal
import sys

from PySide6.QtCore import QCoreApplication

from quiz_admin.constants.about import APP_NAME, APP_VERSION
from quiz_admin.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from quiz_admin.core.quiz_manager import QuizManager
from quiz_admin.server.api_server import start_api_server
from quiz_admin.ui.countdown_driver import CountdownDriver
from quiz_admin.utils.logging_config import configure_logging


def main() -> None:
    """Initialize logging, start the API server, and run the countdown event loop."""
    logger = configure_logging()
    logger.info("Starting %s %s", APP_NAME, APP_VERSION)

    app = QCoreApplication(sys.argv)
    signal.signal(signal.SIGINT, lambda *_: app.quit())

    quiz_manager = QuizManager()
    start_api_server(quiz_manager=quiz_manager, host=DEFAULT_HOST, port=DEFAULT_PORT)

    driver = CountdownDriver(quiz_manager)
    driver.start()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
