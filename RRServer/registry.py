import itertools
import secrets
import threading


class ConnectionState:
    UNAUTHENTICATED = "Unauthenticated"
    AUTHENTICATED = "Authenticated"
    CHARACTER_SELECTED = "CharacterSelected"
    ZONE_JOINING = "ZoneJoining"
    IN_WORLD = "InWorld"


class ConnectionRecord:
    # Everything here is owned by the thread reading this connection, the registry only indexes it
    connection_id = 0
    transport = None
    login_name = ""
    peer_id = None
    zone_initialized = False
    alive = True
    state = ConnectionState.UNAUTHENTICATED
    character = None
    zone = None

    def __init__(self, transport):
        self.connection_id = 0
        self.transport = transport
        self.login_name = ""
        self.peer_id = None
        self.zone_initialized = False
        self.alive = True
        self.state = ConnectionState.UNAUTHENTICATED
        self.character = None
        self.zone = None

    def is_authenticated(self):
        return self.state != ConnectionState.UNAUTHENTICATED


class ConnectionRegistry:
    def __init__(self):
        self._connections = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def register(self, record):
        with self._lock:
            record.connection_id = next(self._ids)
            self._connections[record.connection_id] = record
        return record

    def get(self, connection_id):
        with self._lock:
            return self._connections.get(connection_id)

    def remove(self, connection_id):
        with self._lock:
            record = self._connections.pop(connection_id, None)
        if record is not None:
            record.alive = False
        return record

    def count(self):
        with self._lock:
            return len(self._connections)

    def snapshot(self):
        with self._lock:
            return list(self._connections.values())


class Roster:
    # Characters belonging to one login name, in creation order. Outlives connections.
    def __init__(self, login_name):
        self.login_name = login_name
        self._characters = []
        self._selected = None
        self._lock = threading.Lock()

    def append(self, character):
        with self._lock:
            self._characters.append(character)
            return len(self._characters) - 1

    def snapshot(self):
        with self._lock:
            return list(self._characters)

    def __len__(self):
        with self._lock:
            return len(self._characters)

    def find(self, character_id):
        with self._lock:
            for character in self._characters:
                if character.id == character_id:
                    return character
        return None

    # an id match wins; otherwise the slot index, clamped to 0 when it is out of range
    def select(self, index, character_id=None):
        with self._lock:
            if not self._characters:
                return None
            chosen = None
            if character_id:
                for character in self._characters:
                    if character.id == character_id:
                        chosen = character
                        break
            if chosen is None:
                if index < 0 or index >= len(self._characters):
                    index = 0
                chosen = self._characters[index]
            self._selected = chosen
            return chosen

    @property
    def selected(self):
        with self._lock:
            return self._selected


class RosterStore:
    def __init__(self):
        self._rosters = {}
        self._lock = threading.Lock()

    # seed(login_name) returns the characters a brand new roster starts with
    def get_or_create(self, login_name, seed=None):
        with self._lock:
            roster = self._rosters.get(login_name)
            if roster is not None:
                return roster
            roster = Roster(login_name)
            if seed is not None:
                for character in seed(login_name):
                    roster.append(character)
            self._rosters[login_name] = roster
            return roster

    def get(self, login_name):
        with self._lock:
            return self._rosters.get(login_name)


class TokenStore:
    # One-time tokens handed out by the auth server and redeemed by the game server
    def __init__(self):
        self._tokens = {}
        self._lock = threading.Lock()

    def issue(self, username):
        with self._lock:
            while True:
                token = secrets.randbits(32)
                if token != 0 and token not in self._tokens:
                    break
            self._tokens[token] = username
        return token

    def consume(self, token):
        with self._lock:
            return self._tokens.pop(token, None)

    def __len__(self):
        with self._lock:
            return len(self._tokens)
