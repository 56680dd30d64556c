"""Notification normalization for app-server event streams."""

from turnrelay.normalize.buffers import BUFFER_STREAMS, METADATA_KINDS, StreamBufferStore
from turnrelay.normalize.converter import NotificationNormalizer
from turnrelay.normalize.items import ITEM_HANDLERS, handle_item

__all__ = [
    "BUFFER_STREAMS",
    "ITEM_HANDLERS",
    "METADATA_KINDS",
    "NotificationNormalizer",
    "StreamBufferStore",
    "handle_item",
]
