#!/usr/bin/env python3
# notification.py - Notifications sent by the input engine (schema / option changes)

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SchemaNotification:
    schema_id: str
    schema_name: str = ''


@dataclass(frozen=True)
class OptionNotification:
    option: str
    value: bool


class Subscription:
    """Handle returned by NotificationStream.subscribe(); cancel() is idempotent."""

    def __init__(self, stream, callback):
        self._stream = stream
        self._callback = callback

    @property
    def active(self):
        return self._stream is not None

    def cancel(self):
        if self._stream is None:
            return
        self._stream._remove(self._callback)
        self._stream = None
        self._callback = None


class NotificationStream:
    """
    Simple synchronous notification delivery based on python callbacks.

    emit() calls every subscriber in subscription order before returning,
    on the caller's thread (the GLib main loop in the engine).
    """

    def __init__(self):
        self._callbacks = []

    def subscribe(self, callback):
        if callback not in self._callbacks:
            self._callbacks.append(callback)
        return Subscription(self, callback)

    def _remove(self, callback):
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def has_subscribers(self):
        return bool(self._callbacks)

    def emit(self, notification):
        logger.debug(f'emit({notification})')
        for callback in list(self._callbacks):
            callback(notification)
