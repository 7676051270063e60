"""
Player interface

The actual decoding/playback engine lives outside this package. Anything that
can point at a URL, play, pause and expose a volume can be driven by the
connection manager and the crossfade mixer.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

class PlayerEvent(Enum):
    """Notifications a player pushes to its owner"""
    READY = "ready"
    PLAYING = "playing"
    ERROR = "error"
    STALLED = "stalled"
    WAITING = "waiting"
    METADATA = "metadata"

class PlaybackRejected(Exception):
    """play() refused outright (security policy or unsupported stream type)"""

    def __init__(self, reason: str = "NotSupportedError", message: str = ""):
        super().__init__(message or reason)
        self.reason = reason

@dataclass(frozen=True)
class Station:
    """A playable station as handed over by the catalog"""
    name: str
    url: str
    uuid: str = ""
    tags: str = ""

    @property
    def key(self) -> str:
        return self.uuid or self.url


class StreamPlayer(ABC):
    """Output the core can drive. Volume is a linear gain in [0, 1]."""

    volume: float = 0.0

    @abstractmethod
    def set_source(self, url: Optional[str]):
        """Point the player at a stream URL (None clears it)"""

    @abstractmethod
    def set_cross_origin(self, mode: Optional[str]):
        """Set the cross-origin access mode ("anonymous" or None for unrestricted)"""

    @abstractmethod
    def play(self):
        """Start playback. May raise PlaybackRejected."""

    @abstractmethod
    def pause(self):
        """Pause playback, keeping the source"""

    def release(self):
        """Stop and drop the source so nothing keeps buffering"""
        self.pause()
        self.set_source(None)
