from tortoise import fields
from tortoise.models import Model

from .constants import MAX_NAME_LENGTH, ROOM_CODE_LENGTH, Role, RoomStatus


class Room(Model):
    """A lobby/game session that players join through its short code."""

    id = fields.IntField(pk=True)
    code = fields.CharField(max_length=ROOM_CODE_LENGTH, unique=True, index=True)
    status = fields.CharEnumField(RoomStatus, default=RoomStatus.WAITING)
    created_at = fields.DatetimeField(auto_now_add=True)

    players: fields.ReverseRelation["Player"]

    class Meta:
        table = "rooms"


class Player(Model):
    """A participant of one room, correlated to sockets by ``session_id``."""

    id = fields.IntField(pk=True)
    room: fields.ForeignKeyRelation[Room] = fields.ForeignKeyField(
        "models.Room", related_name="players", on_delete=fields.CASCADE
    )
    session_id = fields.CharField(max_length=64, unique=True, index=True)
    name = fields.CharField(max_length=MAX_NAME_LENGTH)
    # Unique per room while set; enforced by the lobby at selection time.
    role = fields.CharEnumField(Role, null=True)
    is_host = fields.BooleanField(default=False)
    is_ready = fields.BooleanField(default=False)

    class Meta:
        table = "players"
        ordering = ["id"]
