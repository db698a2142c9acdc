from housematch.services.match import MatchService, SwipeResult, MatchHistory, ExpirationStats
from housematch.services.preferences import PreferenceService
from housematch.services.events import MatchEvent, EventPublisher, ArqEventPublisher

__all__ = [
    "MatchService",
    "SwipeResult",
    "MatchHistory",
    "ExpirationStats",
    "PreferenceService",
    "MatchEvent",
    "EventPublisher",
    "ArqEventPublisher",
]
