"""
Error kinds raised by the regional challenge engine.

The API layer maps these onto HTTP responses; everything else (storage
unavailable and so on) propagates unchanged.
"""


class ChallengeEngineError(Exception):
    """Base class for regional challenge engine errors"""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class GeocodeError(ChallengeEngineError):
    """Reverse geocoder unreachable or returned no address"""


class ManifestGenerationError(ChallengeEngineError):
    """LLM oracle unavailable, or there is no animal catalog to ask about"""


class ManifestParseError(ChallengeEngineError):
    """LLM reply could not be parsed even after repair heuristics"""


class NoCandidatesError(ChallengeEngineError):
    """A selection pool is empty.

    Selectors return an empty selection instead of raising this; it is
    kept for callers that want to treat zero-animal challenges as errors.
    """


class NotFoundError(ChallengeEngineError):
    """Referenced region, user or user challenge does not exist"""
