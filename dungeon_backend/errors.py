class LobbyError(Exception):
    """A client request broke a lobby rule; reported to that client only."""


class RoomNotFound(LobbyError):
    pass
