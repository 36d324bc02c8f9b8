from framecodec import LANE_A, SUBTYPE_INITIAL_LOGIN
from gcobject import write_gc_object
from objects import new_player
from protocol import Channel, CharacterMsg, GroupMsg, ZoneMsg, CHARACTER_ID_NEW, MAX_ROSTER_SIZE, lookup_name
from registry import ConnectionState
from utility import int_to_bytes, bytes_to_hex, string_decode, ascii_name, ByteReader

CHARACTER_PLAY_STATES = (ConnectionState.AUTHENTICATED, ConnectionState.CHARACTER_SELECTED)
ZONE_JOIN_STATES = (ConnectionState.ZONE_JOINING, ConnectionState.IN_WORLD)


class Dispatcher:
    # Routes decoded frames for every connection of the game server.
    # Shared services are handed in so nothing here is process-global.
    def __init__(self, ids, rosters, tokens, sequencer, roster_seed_count=2):
        self.ids = ids
        self.rosters = rosters
        self.tokens = tokens
        self.sequencer = sequencer
        self.roster_seed_count = roster_seed_count

    def dispatch(self, conn, frame):
        try:
            self.route(conn, frame)
        except Exception as e:
            print("EXCEPTION: (GS) while handling", frame, "from connection", conn.connection_id)
            print(repr(e))
            if conn.is_authenticated():
                # stops the client's idle timer from firing while it waits on a reply that never comes
                conn.send_keepalive()

    def route(self, conn, frame):
        if frame.lane is None:
            print("RECV> Unknown frame type", hex(frame.sub_type), "-", len(frame.payload), "bytes, acknowledging")
            conn.send_keepalive()
            return

        if conn.peer_id is None:
            conn.peer_id = frame.route_id

        if not conn.is_authenticated():
            if frame.lane == LANE_A and frame.sub_type == SUBTYPE_INITIAL_LOGIN:
                self.handle_initial_login(conn, frame)
            else:
                print("GS: Dropping", frame, "- connection", conn.connection_id, "has not logged in")
            return

        if frame.lane == LANE_A and frame.sub_type == SUBTYPE_INITIAL_LOGIN:
            print("GS: Dropping repeated initial login from", conn.login_name)
            return

        if not frame.has_message():
            if frame.payload:
                print("GS: Dropping undersized message", bytes_to_hex(frame.payload))
            return

        if frame.channel == Channel.CHARACTER:
            self.handle_character(conn, frame)
        elif frame.channel == Channel.ZONE:
            self.handle_zone(conn, frame)
        elif frame.channel == Channel.GROUP:
            print("RECV> GROUP", lookup_name(GroupMsg, frame.message_type), bytes_to_hex(frame.body))
        elif frame.channel == Channel.CLIENT_ENTITY:
            print("RECV> CLIENT_ENTITY", hex(frame.message_type), "ignored,", len(frame.body), "bytes")
        else:
            print("Unknown channel from client:", frame.channel, "type", frame.message_type)

    def violation(self, conn, frame):
        print("GS: Protocol violation from", conn.login_name, "in state", conn.state, "-", frame, "dropped")

    # ---------------- login ----------------
    def handle_initial_login(self, conn, frame):
        print("RECV> INITIAL_LOGIN")
        if len(frame.body) < 4:
            print("GS: Initial login is too short:", bytes_to_hex(frame.payload))
            return
        token = ByteReader(frame.body).read_uint32()
        username = self.tokens.consume(token)
        if username is None:
            print("GS: Rejected session token", hex(token), "on connection", conn.connection_id)
            return

        conn.login_name = username
        conn.state = ConnectionState.AUTHENTICATED
        print("GS: Connection", conn.connection_id, "logged in as", username)
        conn.send_a(Channel.CHARACTER, CharacterMsg.CONNECTED, sub_type=SUBTYPE_INITIAL_LOGIN)

    # ---------------- channel 4 ----------------
    def seed_roster(self, login_name):
        characters = []
        for index in range(self.roster_seed_count):
            characters.append(new_player(self.ids, "{}{}".format(ascii_name(login_name), index + 1)))
        print("GS: Seeded", len(characters), "characters for", login_name)
        return characters

    def roster_for(self, conn):
        return self.rosters.get_or_create(conn.login_name, self.seed_roster)

    def handle_character(self, conn, frame):
        if frame.message_type == CharacterMsg.GET_LIST:
            print("RECV> CHARACTER_GET_LIST")
            self.send_character_list(conn)

        elif frame.message_type == CharacterMsg.CREATE:
            print("RECV> CHARACTER_CREATE")
            self.create_character(conn, string_decode(frame.body))
            self.send_character_list(conn)

        elif frame.message_type == CharacterMsg.PLAY:
            print("RECV> CHARACTER_PLAY")
            if conn.state not in CHARACTER_PLAY_STATES:
                self.violation(conn, frame)
                return
            self.play_character(conn, frame.body)

        else:
            print("Unknown character message from client:", frame.message_type)

    def send_character_list(self, conn):
        characters = self.roster_for(conn).snapshot()[:MAX_ROSTER_SIZE]
        character_list = bytearray()
        character_list.append(len(characters))
        for character in characters:
            character_list.extend(int_to_bytes(character.id, 4))
            character_list.extend(write_gc_object(character))
        print("GS: Sending", len(characters), "characters to", conn.login_name)
        conn.send_a(Channel.CHARACTER, CharacterMsg.GET_LIST, character_list)

    # a refused create is answered with [0] and leaves the roster untouched
    def create_character(self, conn, name):
        name = name or ascii_name(conn.login_name)
        roster = self.roster_for(conn)
        if not name.isascii() or len(roster) >= MAX_ROSTER_SIZE:
            print("GS: Refused character", repr(name), "for", conn.login_name, "- roster holds", len(roster))
            conn.send_a(Channel.CHARACTER, CharacterMsg.CREATE, b"\x00")
            return None

        character = new_player(self.ids, name)
        slot = roster.append(character)
        print("GS: Created character", character.name, "id", character.id, "in slot", slot, "for", conn.login_name)

        create_reply = bytearray()
        create_reply.append(0x01)
        create_reply.extend(int_to_bytes(character.id, 4))
        conn.send_a(Channel.CHARACTER, CharacterMsg.CREATE, create_reply)
        return character

    def play_character(self, conn, body):
        reader = ByteReader(body)
        slot = reader.read_uint8() if reader.remaining() >= 1 else 0
        character_id = reader.read_uint32() if reader.remaining() >= 4 else None
        roster = self.roster_for(conn)

        character = None
        if character_id == CHARACTER_ID_NEW or len(roster) == 0:
            print("GS: Play requested a new character, creating one for", conn.login_name)
            character = self.create_character(conn, ascii_name(conn.login_name))
            self.send_character_list(conn)
        if character is not None:
            character = roster.select(len(roster) - 1, character.id)
        else:
            character = roster.select(slot, character_id)
        if character is None:
            print("GS: No character to play for", conn.login_name)
            return

        conn.state = ConnectionState.CHARACTER_SELECTED
        print("GS:", conn.login_name, "plays", character.name, "id", character.id)
        conn.send_a(Channel.CHARACTER, CharacterMsg.PLAY, int_to_bytes(character.id, 4))
        self.sequencer.begin(conn, character)

    # ---------------- channel 13 ----------------
    def handle_zone(self, conn, frame):
        if frame.message_type == ZoneMsg.JOIN:
            print("RECV> ZONE_JOIN")
            if conn.state not in ZONE_JOIN_STATES:
                self.violation(conn, frame)
                return
            self.sequencer.join(conn)
        else:
            print("RECV> ZONE", lookup_name(ZoneMsg, frame.message_type), "ignored")
