# marketchat/infrastructure/event_dispatcher.py
import logging
from collections import defaultdict
from collections.abc import Callable

from marketchat.domain.events import Event


class EventDispatcher:
    """Runs side-channel handlers after a write has been committed.

    Handlers are best-effort: a failing handler is logged and the remaining
    handlers still run, so delivery problems never undo the stored write.
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.handlers: dict[str, list[Callable]] = defaultdict(list)
        self.logger = logger or logging.getLogger("MarketChat")

    def register(self, event_type: str, handler: Callable) -> None:
        self.handlers[event_type].append(handler)

    async def dispatch(self, event: Event) -> None:
        event_type = event.__class__.__name__
        for handler in self.handlers[event_type]:
            try:
                await handler(event)
            except Exception:
                self.logger.exception(
                    f"Handler {getattr(handler, '__name__', handler)!s} failed for {event_type}"
                )
