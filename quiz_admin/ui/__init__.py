"""Qt event-loop components for the quiz service."""

from .countdown_driver import CountdownDriver

__all__ = ["CountdownDriver"]
