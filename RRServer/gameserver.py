import socket
import threading
from dispatcher import Dispatcher
from framecodec import (FrameReader, FrameOverflowError, MalformedFrameError, encode_lane_a, encode_lane_e,
                        inner_payload, SUBTYPE_MESSAGE, SUBTYPE_KEEPALIVE, SERVER_ROUTE_ID)
from protocol import lookup_name, Channel
from registry import ConnectionRecord
from serverconfig import LoggingOptions
from utility import bytes_to_hex


class Connection(ConnectionRecord):
    client = None
    address = None

    def __init__(self, client_socket, in_address, log_options=None):
        super().__init__(client_socket)
        self.client = client_socket
        self.address = in_address
        self.log_options = log_options or LoggingOptions()
        # the wire is one byte stream, so every frame for this client goes out under this lock
        self.send_lock = threading.Lock()
        if self.address is not None:
            print("Session IP:", self.address[0], "Port:", self.address[1])

    def route_id(self):
        return self.peer_id if self.peer_id is not None else 0

    def send_raw(self, frame_bytes, description=""):
        with self.send_lock:
            if not self.alive:
                print("SEND requested on closed connection", self.connection_id, "ignoring", description)
                return False
            try:
                self.client.sendall(bytes(frame_bytes))
            except OSError as e:
                print("EXCEPTION: (GS) send failed on connection", self.connection_id, e)
                self.alive = False
                return False
        if self.log_options.log_frames:
            print("SEND>> ", description, bytes_to_hex(frame_bytes))
        else:
            print("SEND>> ", description, len(frame_bytes), "bytes")
        return True

    def send_a(self, channel, message_type, body=b"", sub_type=SUBTYPE_MESSAGE):
        payload = inner_payload(channel, message_type, body)
        description = "A {} {}".format(lookup_name(Channel, channel), hex(message_type))
        return self.send_raw(encode_lane_a(self.route_id(), sub_type, payload), description)

    def send_e(self, channel, message_type, body=b""):
        payload = inner_payload(channel, message_type, body)
        description = "E {} {}".format(lookup_name(Channel, channel), hex(message_type))
        return self.send_raw(encode_lane_e(self.route_id(), SERVER_ROUTE_ID, payload), description)

    def send_keepalive(self):
        return self.send_raw(encode_lane_a(self.route_id(), SUBTYPE_KEEPALIVE, b""), "KEEPALIVE")


class GameServer(object):
    host = None
    port = 0
    socket_rx_size = 4096

    def __init__(self, host, port, dispatcher: Dispatcher, connections, log_options=None):
        self.host = host
        self.port = port
        self.dispatcher = dispatcher
        self.connections = connections
        self.log_options = log_options or LoggingOptions()
        self.sock = None

    def bind(self):
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.sock.bind((self.host, self.port))
        self.port = self.sock.getsockname()[1]
        print("GS: TCP Bound")

    def listen(self):
        if self.sock is None:
            self.bind()
        self.sock.listen(5)
        print("GS: Listening on", self.host, self.port)
        while True:
            client, address = self.sock.accept()
            client.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            threading.Thread(target=self.client_connection, args=(client, address), daemon=True).start()

    def client_connection(self, client, address):
        print("GS: New connection from", address)
        conn = Connection(client, address, self.log_options)
        self.connections.register(conn)
        reader = FrameReader()

        try:
            while conn.alive:
                try:
                    data = client.recv(self.socket_rx_size)
                except OSError as e:
                    print("GS: Connection", conn.connection_id, "read failed:", e)
                    break
                if not data:
                    print("GS: Client disconnected")
                    break
                if self.log_options.log_frames:
                    print("RECV>> ", bytes_to_hex(data))
                reader.feed(data)
                try:
                    self.process_frames(conn, reader)
                except FrameOverflowError as e:
                    print("GS: Closing connection", conn.connection_id, "-", e)
                    break
        finally:
            # only this connection's entry goes, the login's roster stays for the next session
            self.connections.remove(conn.connection_id)
            client.close()
            print("GS: Connection", conn.connection_id, "closed,", self.connections.count(), "remaining")

    def process_frames(self, conn, reader):
        while True:
            try:
                frame = reader.next_frame()
            except MalformedFrameError as e:
                print("RECV BROKEN PACKET>>", e)
                continue
            if frame is None:
                return
            print("")
            print("RECV>> ", frame)
            self.dispatcher.dispatch(conn, frame)
