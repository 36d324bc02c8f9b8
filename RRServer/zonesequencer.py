import random
import time
from gcobject import write_gc_object, write_component
from objects import COMPONENT_CLASSES, is_component, init_data
from protocol import Channel, GroupMsg, ZoneMsg, EntityOp, MINIMAP_MASK_SIZE, TICK_INTERVAL_MS, entity_id
from registry import ConnectionState
from utility import int_to_bytes, cstring


class Zone:
    def __init__(self, zone_id: int, name: str, capacity: int, terrain: str):
        self.zone_id = zone_id
        self.name = name
        self.capacity = capacity
        self.terrain = terrain

    def __repr__(self):
        return "<Zone {} '{}' cap={} terrain={}>".format(self.zone_id, self.name, self.capacity, self.terrain)


ZONES = [
    Zone(1, "Town", 100, "Grass"),
    Zone(2, "World", 200, "Mixed"),
    Zone(3, "Dungeon", 50, "Stone"),
    Zone(4, "Forest", 150, "Forest"),
]


def find_zone(zone_name):
    for zone in ZONES:
        if zone.name.lower() == str(zone_name).lower():
            return zone
    return None


class ZoneSequencer:
    # Walks a connection from character selection into the world.
    #
    # begin(): group connected -> zone connected -> ClientEntity bootstrap burst
    # join():  zone ready -> instance count -> avatar/player/components -> connected + follow
    #
    # The client has no tolerance for reordering. The delays only give its state machine time to
    # settle and can be set to 0, but join() always yields before it starts building entities.
    def __init__(self, default_zone="Town", step_delay=0.05, log_options=None):
        self.default_zone = find_zone(default_zone) or ZONES[0]
        self.step_delay = step_delay
        self.log_options = log_options

    def _pause(self):
        time.sleep(self.step_delay)

    def _dfc_flags(self):
        if self.log_options is None:
            return {}
        return {"log_hashes": self.log_options.log_hashes,
                "log_serialise": self.log_options.log_gc_object_serialise}

    def resolve_zone(self, zone_name):
        zone = find_zone(zone_name) if zone_name else None
        if zone is None:
            if zone_name:
                print("ZONE: Unknown zone", zone_name, "- using", self.default_zone.name)
            zone = self.default_zone
        return zone

    def begin(self, conn, character, zone_name=None):
        zone = self.resolve_zone(zone_name)
        conn.character = character
        conn.zone = zone
        conn.state = ConnectionState.ZONE_JOINING
        print("ZONE:", conn.login_name, "heading to", zone.name, "as", character.name, "id", character.id)

        conn.send_a(Channel.GROUP, GroupMsg.CONNECTED)
        self._pause()

        zone_connected = bytearray()
        zone_connected.extend(cstring(zone.name))
        zone_connected.extend(int_to_bytes(zone.zone_id, 4))
        zone_connected.extend(int_to_bytes(zone.capacity, 4))
        conn.send_e(Channel.ZONE, ZoneMsg.CONNECTED, zone_connected)
        self._pause()

        interval = bytearray()
        interval.extend(int_to_bytes(0, 4))  # current tick
        interval.extend(int_to_bytes(TICK_INTERVAL_MS, 4))
        conn.send_a(Channel.CLIENT_ENTITY, EntityOp.INTERVAL, interval)
        conn.send_a(Channel.CLIENT_ENTITY, EntityOp.RANDOM_SEED, int_to_bytes(random.getrandbits(32), 4))
        conn.send_a(Channel.CLIENT_ENTITY, EntityOp.CONNECT)
        return zone

    def join(self, conn):
        if conn.zone_initialized:
            print("ZONE: Join repeated by", conn.login_name, "- already initialised, ignoring")
            return False
        conn.zone_initialized = True
        self._pause()

        zone = conn.zone or self.default_zone
        zone_ready = bytearray()
        zone_ready.extend(int_to_bytes(zone.zone_id, 4))
        zone_ready.extend(bytes([0xFF] * MINIMAP_MASK_SIZE))
        conn.send_e(Channel.ZONE, ZoneMsg.READY, zone_ready)

        instance_count = bytearray()
        instance_count.extend(int_to_bytes(1, 4))
        instance_count.extend(int_to_bytes(1, 4))
        conn.send_e(Channel.ZONE, ZoneMsg.INSTANCE_COUNT, instance_count)
        self._pause()

        avatar = self.construct_player(conn, conn.character)

        conn.send_a(Channel.CLIENT_ENTITY, EntityOp.CONNECTED)
        follow = bytearray()
        follow.extend(int_to_bytes(entity_id(avatar), 2, big_endian=True))
        follow.append(0x01)
        conn.send_a(Channel.CLIENT_ENTITY, EntityOp.FOLLOW_CLIENT, follow)

        conn.state = ConnectionState.IN_WORLD
        print("ZONE:", conn.login_name, "is in", zone.name)
        return True

    # sends avatar, player and the avatar's components, each followed by its init block
    def construct_player(self, conn, character):
        avatar = character.find_child("Avatar")
        if avatar is None:
            raise ValueError("character {} has no avatar".format(character.id))

        avatar_view = avatar.shallow_copy(lambda child: not is_component(child))
        player_view = character.shallow_copy(lambda child: child is not avatar)
        for entity in (avatar_view, player_view):
            self._send_entity(conn, entity)

        avatar_id = int_to_bytes(entity_id(avatar), 2, big_endian=True)
        for component_class in COMPONENT_CLASSES:
            component = avatar.find_child(component_class)
            if component is None:
                print("ZONE: Avatar", avatar.id, "has no", component_class)
                continue
            component_id = int_to_bytes(entity_id(component), 2, big_endian=True)

            create = bytearray()
            create.extend(avatar_id)
            create.extend(component_id)
            create.extend(write_component(component, **self._dfc_flags()))
            conn.send_a(Channel.CLIENT_ENTITY, EntityOp.COMPONENT_CREATE, create)

            init = bytearray()
            init.extend(component_id)
            init.extend(init_data(component))
            conn.send_a(Channel.CLIENT_ENTITY, EntityOp.COMPONENT_INIT, init)
        return avatar

    def _send_entity(self, conn, entity):
        eid = int_to_bytes(entity_id(entity), 2, big_endian=True)

        create = bytearray()
        create.extend(eid)
        create.extend(write_gc_object(entity, **self._dfc_flags()))
        conn.send_a(Channel.CLIENT_ENTITY, EntityOp.CREATE, create)

        init = bytearray()
        init.extend(eid)
        init.extend(init_data(entity))
        conn.send_a(Channel.CLIENT_ENTITY, EntityOp.INIT, init)
