"""
Relay services: last-value cache, broadcaster, upstream forwarder and the
ingress adapter that ties them together.
"""
from .broadcaster import Broadcaster, Subscription
from .event_store import CacheEntry, LastValueCache
from .forwarder import ForwardingWorker, ForwardResult, PollResult, UpstreamForwarder
from .ingress import EventKind, IngressAdapter, IngressResult, IngressSource
from .relay import RelayService

__all__ = [
    "Broadcaster",
    "Subscription",
    "CacheEntry",
    "LastValueCache",
    "ForwardingWorker",
    "ForwardResult",
    "PollResult",
    "UpstreamForwarder",
    "EventKind",
    "IngressAdapter",
    "IngressResult",
    "IngressSource",
    "RelayService",
]
