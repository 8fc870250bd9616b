"""Named error conditions raised by the engine and lifecycle controllers.

Lifecycle conflicts are reported to callers (the HTTP layer maps them to
status codes); ``ResolutionInvariantError`` signals a programming error and
is never caught inside the engine.
"""


class RumorSimError(Exception):
    """Base class for all named simulator conditions."""


class RoomNotFound(RumorSimError):
    def __init__(self, room_id: int) -> None:
        super().__init__(f"Room not found: {room_id}")
        self.room_id = room_id


class RoundNotFound(RumorSimError):
    def __init__(self, round_ref: object) -> None:
        super().__init__(f"Round not found: {round_ref}")
        self.round_ref = round_ref


class NoActiveRound(RumorSimError):
    def __init__(self, room_id: int) -> None:
        super().__init__(f"No active round in room {room_id} (all resolved or game over)")
        self.room_id = room_id


class RoundResolved(RumorSimError):
    def __init__(self, round_id: int) -> None:
        super().__init__(f"Round already resolved: {round_id}")
        self.round_id = round_id


class DuplicateSubmission(RumorSimError):
    def __init__(self, round_id: int, player_id: str) -> None:
        super().__init__(f"Player {player_id} already submitted for round {round_id}")
        self.round_id = round_id
        self.player_id = player_id


class UnknownEvent(RumorSimError):
    def __init__(self, event_id: str) -> None:
        super().__init__(f"Unknown rumor event: {event_id}")
        self.event_id = event_id


class OutOfRange(RumorSimError):
    def __init__(self, round_index: int, size: int) -> None:
        super().__init__(f"Story mode only has {size} rounds (got round {round_index})")
        self.round_index = round_index
        self.size = size


class ResolutionInvariantError(RumorSimError):
    """Resolution was invoked outside its contract (e.g. with no submissions)."""
