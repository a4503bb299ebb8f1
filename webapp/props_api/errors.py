"""
Error taxonomy for the Prop Analytics API.

ValidationError (and PlayerNotFoundError) surface to the caller as-is.
UpstreamFailure and PersistenceFailure describe infrastructure trouble and are
absorbed at the fallback boundary or counted by the batch runner.
An empty filtered game set is not an error at all.
"""


class PropAnalyticsError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(PropAnalyticsError, ValueError):
    """Malformed stat category, line, filter or season label."""


class PlayerNotFoundError(ValidationError):
    def __init__(self, player_id: int):
        super().__init__(f"Player not found: {player_id}")
        self.player_id = player_id


class UpstreamFailure(PropAnalyticsError):
    """The game-log source raised or timed out."""


class PersistenceFailure(PropAnalyticsError):
    """A rolling-split upsert failed or timed out."""
