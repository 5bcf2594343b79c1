from typing import Any, Callable, Generic, List, Optional, TypeVar

from models.schemas import Notice, NoticeLevel
from utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class Store(Generic[T]):
    """
    Publish/subscribe channel with a single current-value cell.

    The wizard owns one store per piece of UI-facing state (notices,
    progress, step) and hands references to whoever needs to listen.
    New subscribers receive the current value immediately.
    """

    def __init__(self, initial: Optional[T] = None, replay: bool = True):
        self._value = initial
        self._replay = replay
        self._subscribers: List[Callable[[T], Any]] = []

    @property
    def value(self) -> Optional[T]:
        return self._value

    def publish(self, value: T) -> None:
        self._value = value
        for callback in list(self._subscribers):
            self._notify(callback, value)

    @staticmethod
    def _notify(callback: Callable[[T], Any], value: T) -> None:
        try:
            callback(value)
        except Exception:
            # a broken listener must not stop the import flow
            logger.exception("Store subscriber %r failed", callback)

    def subscribe(self, callback: Callable[[T], Any]) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._subscribers.append(callback)
        if self._replay and self._value is not None:
            self._notify(callback, self._value)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)
        return unsubscribe

    def reset(self, value: Optional[T] = None) -> None:
        """Set the cell without notifying anyone."""
        self._value = value


class NoticeChannel(Store[Notice]):
    """Store of transient user notices; late subscribers do not get old ones."""

    def __init__(self):
        super().__init__(replay=False)

    def _emit(self, level, message: str, duration_ms: int):
        self.publish(Notice(level=level, message=message, duration_ms=duration_ms))

    def success(self, message: str, duration_ms: int = 3000):
        self._emit(NoticeLevel.success, message, duration_ms)

    def error(self, message: str, duration_ms: int = 3000):
        self._emit(NoticeLevel.error, message, duration_ms)

    def info(self, message: str, duration_ms: int = 2000):
        self._emit(NoticeLevel.info, message, duration_ms)
