from .presence import PresenceTracker
from .fetcher import CachedFetcher
from .messaging import MessageFeed

__all__ = ["CachedFetcher", "MessageFeed", "PresenceTracker"]
