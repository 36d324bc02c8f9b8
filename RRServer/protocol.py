# Channel and message type numbers of the game server protocol.
# Every inflated payload starts with [channel][message type].


class Channel:
    CHARACTER = 4
    CLIENT_ENTITY = 7
    GROUP = 9
    ZONE = 13


class CharacterMsg:
    CONNECTED = 0
    CREATE = 2
    GET_LIST = 3
    PLAY = 5


class GroupMsg:
    CONNECTED = 48


class ZoneMsg:
    CONNECTED = 0
    READY = 1
    INSTANCE_COUNT = 5
    JOIN = 6


# ClientEntity opcodes, entity ids inside them are big-endian u16
class EntityOp:
    CREATE = 0x01
    INIT = 0x02
    INTERVAL = 0x0C
    RANDOM_SEED = 0x0D
    CONNECT = 0x0E
    COMPONENT_CREATE = 0x32
    COMPONENT_INIT = 0x33
    CONNECTED = 0x46
    FOLLOW_CLIENT = 0x64


CHARACTER_ID_NEW = 0  # "create a new character" in a play request
MINIMAP_MASK_SIZE = 0x40
MAX_ROSTER_SIZE = 0xFF  # the character list count is a single byte
TICK_INTERVAL_MS = 33


def entity_id(obj):
    return obj.id & 0xFFFF


def lookup_name(constants, value):
    for name, constant in vars(constants).items():
        if not name.startswith("_") and constant == value:
            return name
    return "0x{:02X}".format(value) if value is not None else "None"
