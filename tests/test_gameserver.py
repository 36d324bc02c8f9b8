from conftest import (CLIENT_ROUTE_ID, FakeSocket, client_frame, client_frame_e, login_frame, message_keys,
                      sent_frames)
from framecodec import LANE_A, LANE_E, SUBTYPE_INITIAL_LOGIN, SUBTYPE_KEEPALIVE, MAX_FRAME_SIZE
from gameserver import Connection
from protocol import Channel, CharacterMsg, EntityOp, GroupMsg, ZoneMsg
from utility import bytes_to_int, int_to_bytes

ADDRESS = ("127.0.0.1", 50000)


def chop(data, size):
    return [data[i:i + size] for i in range(0, len(data), size)]


def session_bytes(token):
    stream = bytearray()
    stream.extend(login_frame(token))
    stream.extend(client_frame(Channel.CHARACTER, CharacterMsg.GET_LIST))
    stream.extend(client_frame(Channel.CHARACTER, CharacterMsg.PLAY, b"\x00"))
    stream.extend(client_frame_e(Channel.ZONE, ZoneMsg.JOIN))
    stream.extend(client_frame_e(Channel.ZONE, ZoneMsg.JOIN))
    return bytes(stream)


def test_login_to_world(services):
    token = services.tokens.issue("alice")
    # awkward chunk boundaries so frames straddle recv() calls
    client = FakeSocket(chop(session_bytes(token), 7))
    services.game_server.client_connection(client, ADDRESS)

    frames = sent_frames(client)
    keys = message_keys(frames)

    ack = frames[0]
    assert ack.sub_type == SUBTYPE_INITIAL_LOGIN
    assert keys[0] == (Channel.CHARACTER, CharacterMsg.CONNECTED)

    assert keys[1] == (Channel.CHARACTER, CharacterMsg.GET_LIST)
    body = frames[1].body
    assert body[0] == 2
    first_id = bytes_to_int(body[1:5], 4)

    assert keys[2] == (Channel.CHARACTER, CharacterMsg.PLAY)
    assert frames[2].body == int_to_bytes(first_id, 4)
    assert keys[3] == (Channel.GROUP, GroupMsg.CONNECTED)
    assert keys[4] == (Channel.ZONE, ZoneMsg.CONNECTED)
    assert frames[4].body.startswith(b"Town\x00")
    assert keys[5:8] == [(Channel.CLIENT_ENTITY, EntityOp.INTERVAL),
                         (Channel.CLIENT_ENTITY, EntityOp.RANDOM_SEED),
                         (Channel.CLIENT_ENTITY, EntityOp.CONNECT)]
    assert keys[8] == (Channel.ZONE, ZoneMsg.READY)
    assert keys[-1] == (Channel.CLIENT_ENTITY, EntityOp.FOLLOW_CLIENT)
    assert keys.count((Channel.CLIENT_ENTITY, EntityOp.FOLLOW_CLIENT)) == 1

    # every frame goes back to the route id the client introduced itself with
    for frame in frames:
        if frame.lane == LANE_A:
            assert frame.route_id == CLIENT_ROUTE_ID
        else:
            assert frame.lane == LANE_E
            assert frame.dest_id == CLIENT_ROUTE_ID


def test_disconnect_purges_the_registry_but_keeps_the_roster(services):
    client = FakeSocket([login_frame(services.tokens.issue("alice")),
                         client_frame(Channel.CHARACTER, CharacterMsg.GET_LIST)])
    services.game_server.client_connection(client, ADDRESS)
    assert client.closed
    assert services.connections.count() == 0

    roster = services.rosters.get("alice")
    assert len(roster) == 2

    again = FakeSocket([login_frame(services.tokens.issue("alice")),
                        client_frame(Channel.CHARACTER, CharacterMsg.GET_LIST)])
    services.game_server.client_connection(again, ADDRESS)
    relisted = sent_frames(again)[1].body
    assert bytes_to_int(relisted[1:5], 4) == roster.snapshot()[0].id


def test_broken_frame_does_not_end_the_session(services):
    broken = bytearray(client_frame(Channel.CHARACTER, CharacterMsg.GET_LIST))
    broken[-1] ^= 0xFF
    client = FakeSocket([login_frame(services.tokens.issue("alice")),
                         bytes(broken),
                         client_frame(Channel.CHARACTER, CharacterMsg.GET_LIST)])
    services.game_server.client_connection(client, ADDRESS)
    assert message_keys(sent_frames(client)) == [(Channel.CHARACTER, CharacterMsg.CONNECTED),
                                                 (Channel.CHARACTER, CharacterMsg.GET_LIST)]


def test_oversized_frame_closes_the_connection(services):
    oversized = bytes([LANE_A, 0, 0, 0]) + bytes(int_to_bytes(MAX_FRAME_SIZE + 1, 4))
    client = FakeSocket([login_frame(services.tokens.issue("alice")),
                         oversized,
                         client_frame(Channel.CHARACTER, CharacterMsg.GET_LIST)])
    services.game_server.client_connection(client, ADDRESS)
    assert client.closed
    assert services.connections.count() == 0
    assert message_keys(sent_frames(client)) == [(Channel.CHARACTER, CharacterMsg.CONNECTED)]


class BrokenPipe(FakeSocket):
    def sendall(self, data):
        raise BrokenPipeError("peer went away")


def test_failed_send_marks_connection_dead():
    conn = Connection(BrokenPipe(), None)
    assert conn.send_a(Channel.GROUP, GroupMsg.CONNECTED) is False
    assert conn.alive is False
    assert conn.send_keepalive() is False


def test_login_behind_unknown_bytes_is_still_read(services):
    client = FakeSocket([b"\x99\x01" + bytes(login_frame(services.tokens.issue("alice")))])
    services.game_server.client_connection(client, ADDRESS)
    frames = sent_frames(client)
    assert frames[0].sub_type == SUBTYPE_KEEPALIVE
    assert message_keys(frames[1:]) == [(Channel.CHARACTER, CharacterMsg.CONNECTED)]


def test_over_declared_frame_closes_the_connection(services):
    bad = bytearray(client_frame(Channel.CHARACTER, CharacterMsg.GET_LIST))
    bad[4:8] = int_to_bytes(bytes_to_int(bad[4:8], 4) + 40, 4)
    client = FakeSocket([login_frame(services.tokens.issue("alice")),
                         bytes(bad) + bytes(client_frame(Channel.CHARACTER, CharacterMsg.GET_LIST))])
    services.game_server.client_connection(client, ADDRESS)
    assert client.closed
    assert services.connections.count() == 0
    assert message_keys(sent_frames(client)) == [(Channel.CHARACTER, CharacterMsg.CONNECTED)]
