"""Lifecycle events delivered to observers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class EventName(str, Enum):
    """Lifecycle event names."""

    START = "Start"
    RESULT = "Result"
    ERROR = "Error"
    ABORT = "Abort"
    CANCEL = "Cancel"


@dataclass(frozen=True)
class Event:
    """A lifecycle event.

    Payload by event:
    - Start: the notifier that started
    - Result: the GraphQL response
    - Error / Abort: an exception instance describing the failure
    - Cancel: None
    """

    name: EventName
    payload: Any = None

    @property
    def callback_name(self) -> str:
        """Observer attribute handling this event (e.g. "on_result")."""
        return f"on_{self.name.value.lower()}"

    def dispatch(self, observer: Any) -> None:
        """Invoke the matching observer callback, if the observer defines one.

        Exceptions raised by the callback are logged and swallowed so that a
        misbehaving observer cannot break delivery to the others.
        """
        callback = getattr(observer, self.callback_name, None)
        if callback is None:
            return
        try:
            if self.name == EventName.CANCEL:
                callback()
            else:
                callback(self.payload)
        except Exception:
            logger.exception(f"Error in observer callback for {self.name.value}")

    # Factories

    @classmethod
    def start(cls, notifier: Any) -> Event:
        return cls(EventName.START, notifier)

    @classmethod
    def result(cls, result: Any) -> Event:
        return cls(EventName.RESULT, result)

    @classmethod
    def error(cls, error: Exception) -> Event:
        return cls(EventName.ERROR, error)

    @classmethod
    def abort(cls, error: Exception) -> Event:
        return cls(EventName.ABORT, error)

    @classmethod
    def cancel(cls) -> Event:
        return cls(EventName.CANCEL)
