import pytest
from dispatcher import Dispatcher
from framecodec import FrameReader, encode_lane_a, encode_lane_e, inner_payload, SUBTYPE_INITIAL_LOGIN, SUBTYPE_MESSAGE
from gameserver import Connection, GameServer
from objects import IdAllocator
from registry import ConnectionRegistry, RosterStore, TokenStore
from utility import int_to_bytes
from zonesequencer import ZoneSequencer

CLIENT_ROUTE_ID = 0x123456


class FakeSocket:
    # stands in for a connected TCP socket: recv() plays back scripted chunks, then reports EOF
    def __init__(self, chunks=()):
        self.incoming = [bytes(chunk) for chunk in chunks if chunk]
        self.sent = bytearray()
        self.closed = False

    def recv(self, size):
        if not self.incoming:
            return b""
        chunk = self.incoming[0]
        data, rest = chunk[:size], chunk[size:]
        if rest:
            self.incoming[0] = rest
        else:
            self.incoming.pop(0)
        return data

    def sendall(self, data):
        self.sent.extend(data)

    def close(self):
        self.closed = True


def sent_frames(fake_socket):
    reader = FrameReader()
    reader.feed(fake_socket.sent)
    frames = []
    while True:
        frame = reader.next_frame()
        if frame is None:
            return frames
        frames.append(frame)


def message_keys(frames):
    return [(frame.channel, frame.message_type) for frame in frames]


def login_frame(token, route_id=CLIENT_ROUTE_ID):
    return encode_lane_a(route_id, SUBTYPE_INITIAL_LOGIN, inner_payload(0, 0, int_to_bytes(token, 4)))


def client_frame(channel, message_type, body=b"", route_id=CLIENT_ROUTE_ID):
    return encode_lane_a(route_id, SUBTYPE_MESSAGE, inner_payload(channel, message_type, body))


def client_frame_e(channel, message_type, body=b"", source_id=CLIENT_ROUTE_ID):
    return encode_lane_e(0, source_id, inner_payload(channel, message_type, body))


class Services:
    def __init__(self):
        self.ids = IdAllocator()
        self.rosters = RosterStore()
        self.tokens = TokenStore()
        self.connections = ConnectionRegistry()
        self.sequencer = ZoneSequencer("Town", step_delay=0)
        self.dispatcher = Dispatcher(self.ids, self.rosters, self.tokens, self.sequencer, roster_seed_count=2)
        self.game_server = GameServer("127.0.0.1", 0, self.dispatcher, self.connections)

    def connect(self):
        conn = Connection(FakeSocket(), None)
        self.connections.register(conn)
        return conn

    def dispatch(self, conn, frame_bytes):
        reader = FrameReader()
        reader.feed(frame_bytes)
        self.game_server.process_frames(conn, reader)

    def logged_in(self, username="alice"):
        conn = self.connect()
        self.dispatch(conn, login_frame(self.tokens.issue(username)))
        conn.client.sent.clear()
        return conn


@pytest.fixture
def services():
    return Services()
