"""Socket configuration.

Names of the channel and of the messages exchanged over it. Defaults match
the Absinthe server-side channel implementation.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_CHANNEL_TOPIC = "__absinthe__:control"


@dataclass(frozen=True)
class SocketConfig:
    """Configuration for an AbsintheSocket."""

    # Logical channel carrying all operation traffic
    channel_topic: str = DEFAULT_CHANNEL_TOPIC

    # Outbound message names
    doc_event: str = "doc"
    unsubscribe_event: str = "unsubscribe"

    # Inbound subscription data message name
    data_event: str = "subscription:data"

    @classmethod
    def from_env(cls) -> SocketConfig:
        """Build a config, taking the channel topic from ABSINTHE_CHANNEL_TOPIC if set."""
        return cls(channel_topic=os.getenv("ABSINTHE_CHANNEL_TOPIC", DEFAULT_CHANNEL_TOPIC))
