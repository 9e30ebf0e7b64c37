from enum import Enum


class Role(str, Enum):
    SWORDSMAN = "swordsman"
    BEAST = "beast"
    ARCHER = "archer"
    MAGE = "mage"
    HEALER = "healer"


class RoomStatus(str, Enum):
    WAITING = "waiting"
    PLAYING = "playing"
    FINISHED = "finished"


class GameStatus(str, Enum):
    PLAYING = "playing"
    WON = "won"
    LOST = "lost"


class Phase(str, Enum):
    COURTYARD = "courtyard"
    DUNGEON = "dungeon"
    BOSS = "boss"
    CLEARED = "cleared"


class EnemyType(str, Enum):
    WEAK = "weak"
    MEDIUM = "medium"
    BOSS = "boss"


MAX_PLAYERS = 5
ROOM_CODE_LENGTH = 4
MAX_NAME_LENGTH = 12

ROOM_WIDTH = 800
ROOM_HEIGHT = 600
# Players are kept this far away from every wall.
BOUNDS_MARGIN = 20

SPAWN_X = 60
PLAYER_MAX_HEALTH = 100.0
PLAYER_SPEED = 5.0

ATTACK_COOLDOWN = 0.25  # seconds
ATTACK_WINDOW = 0.2  # seconds the attacking flag stays up
MELEE_RADIUS = 60.0
MELEE_DAMAGE = 20.0

DOOR_RADIUS = 60.0
COURTYARD_TIMEOUT = 30.0  # seconds
BOSS_WAVE = 99

CONTACT_RADIUS = 30.0

# type -> (speed per tick, contact damage per tick, max health, melee vulnerability)
ENEMY_STATS: dict[EnemyType, tuple[float, float, float, float]] = {
    EnemyType.WEAK: (2.2, 0.5, 50.0, 1.0),
    EnemyType.MEDIUM: (1.8, 1.0, 120.0, 1.0),
    EnemyType.BOSS: (1.4, 2.0, 500.0, 0.5),
}

# wave number -> (enemy type, count)
DUNGEON_WAVES: dict[int, tuple[EnemyType, int]] = {
    1: (EnemyType.WEAK, 6),
    2: (EnemyType.MEDIUM, 3),
}

__all__ = [
    "Role",
    "RoomStatus",
    "GameStatus",
    "Phase",
    "EnemyType",
    "MAX_PLAYERS",
    "ROOM_CODE_LENGTH",
    "MAX_NAME_LENGTH",
    "ROOM_WIDTH",
    "ROOM_HEIGHT",
    "BOUNDS_MARGIN",
    "SPAWN_X",
    "PLAYER_MAX_HEALTH",
    "PLAYER_SPEED",
    "ATTACK_COOLDOWN",
    "ATTACK_WINDOW",
    "MELEE_RADIUS",
    "MELEE_DAMAGE",
    "DOOR_RADIUS",
    "COURTYARD_TIMEOUT",
    "BOSS_WAVE",
    "CONTACT_RADIUS",
    "ENEMY_STATS",
    "DUNGEON_WAVES",
]
