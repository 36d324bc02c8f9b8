import socket
import threading
import zlib
from logincrypt import decode_login, LOGIN_KEY, LOGIN_BLOCK_SIZE, LOGIN_TAIL_SIZE
from utility import bytes_to_hex, int_to_bytes, bytes_to_int, ip_to_int

# Auth server packet layout:
# Packet Data: 10 00 00 9a 02 00 00 08 54 45 53 54 00 00 00 00
# Index:       00 01 02 03 04 05 06 07 08 09 0a 0b 0c 0d 0e 0f
#
# 00, 01 = Packet size including these two bytes, 00 = LSB, 01 = MSB
# 02 = Message type
# 03 onwards = Message body

C_LOGIN = 0x00
C_ABOUT_TO_PLAY = 0x02
C_SERVER_LIST_EXT = 0x05

S_PROTOCOL_VER = 0x00
S_LOGIN_OK = 0x03
S_SERVER_LIST_EX = 0x04
S_PLAY_OK = 0x07

PLAY_UID = 0x5678DEFA


# recv until exactly size bytes arrived, None when the peer goes away first
def read_exact(client, size):
    received = bytearray()
    while len(received) < size:
        data = client.recv(size - len(received))
        if not data:
            return None
        received.extend(data)
    return bytes(received)


class ServerOption:
    # Describes a game server to be listed by the auth server
    def __init__(self, server_id: int, server_address: str, server_port: int, server_utilization: int,
                 server_capacity: int, server_enabled: bool):
        self.server_id = server_id
        self.server_address = server_address
        self.server_port = server_port
        self.server_utilization = server_utilization
        self.server_capacity = server_capacity
        self.server_enabled = server_enabled


class AuthServer(object):
    def __init__(self, host, port, server_options, tokens, protocol_version=666, login_decoder=decode_login):
        self.host = host
        self.port = port
        self.server_options = server_options
        self.tokens = tokens
        self.protocol_version = protocol_version
        self.login_decoder = login_decoder
        self.sock = None
        print("AS: Server list:")
        for server_option in self.server_options:
            print("Server:", server_option.server_id, "on", server_option.server_address, ":",
                  server_option.server_port)

    def bind(self):
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.sock.bind((self.host, self.port))
        self.port = self.sock.getsockname()[1]
        print("AS: TCP Bound")

    def listen(self):
        if self.sock is None:
            self.bind()
        self.sock.listen(5)
        print("AS: Listening on", self.host, ":", self.port)
        while True:
            client, address = self.sock.accept()
            client.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            threading.Thread(target=self.client_connection, args=(client, address), daemon=True).start()

    def client_connection(self, client, address):
        print("AS: New connection from", address)
        current_user = None
        account_id = 0

        try:
            # the version handshake is the only frame the client accepts unprompted
            handshake = bytearray()
            handshake.extend(int_to_bytes(self.protocol_version, 4))
            handshake.append(len(LOGIN_KEY))
            handshake.extend(LOGIN_KEY)
            self.send(client, S_PROTOCOL_VER, handshake)

            while True:
                header = read_exact(client, 2)
                if header is None:
                    print("AS: Client disconnected")
                    return True
                packet_size = bytes_to_int(header, 2)
                if packet_size < 3:
                    print("AS: Invalid Packet (length < 3), closing")
                    return False
                rest = read_exact(client, packet_size - 2)
                if rest is None:
                    print("AS: Client disconnected mid-packet")
                    return False

                client_command = rest[0]
                body = rest[1:]
                print("")
                print("AS RECV>> ", hex(client_command), bytes_to_hex(body))

                if client_command == C_LOGIN:
                    print("AS RECV> LOGIN")
                    if len(body) < LOGIN_BLOCK_SIZE + LOGIN_TAIL_SIZE:
                        print("AS: Login packet too short, ignoring")
                        continue
                    current_user, password = self.login_decoder(
                        body[:LOGIN_BLOCK_SIZE], body[LOGIN_BLOCK_SIZE:LOGIN_BLOCK_SIZE + LOGIN_TAIL_SIZE])
                    account_id = AuthServer.get_account_id(current_user)
                    print("AS: Login", current_user, "account", account_id)
                    self.send(client, S_LOGIN_OK, int_to_bytes(account_id, 4))
                    self.send(client, S_SERVER_LIST_EX, self.get_server_list())

                elif client_command == C_SERVER_LIST_EXT:
                    print("AS RECV> SERVER_LIST_EXT")
                    self.send(client, S_SERVER_LIST_EX, self.get_server_list())

                elif client_command == C_ABOUT_TO_PLAY:
                    print("AS RECV> ABOUT_TO_PLAY")
                    if len(body) < 9:
                        print("AS: About-to-play packet too short, ignoring")
                        continue
                    if current_user is None:
                        print("AS: About-to-play before login, ignoring")
                        continue
                    server_id = body[8]
                    play_token = self.tokens.issue(current_user)
                    play_packet = bytearray()
                    play_packet.extend(int_to_bytes(play_token, 4))
                    play_packet.extend(int_to_bytes(PLAY_UID, 4))
                    play_packet.append(server_id)
                    self.send(client, S_PLAY_OK, play_packet)
                    print("AS: Play token", hex(play_token), "for", current_user, "on server", server_id)

                else:
                    print("AS: Unhandled client message", hex(client_command), "rest", len(body))
        except OSError as e:
            print("EXCEPTION: (AS) client forcibly closed:", e)
            return False
        finally:
            client.close()

    @staticmethod
    def generate_packet(command, data_bytes):
        response = bytearray()
        response.extend(int_to_bytes(len(data_bytes) + 3, 2))
        response.append(command)
        response.extend(data_bytes)
        return response

    def send(self, client, command, data_bytes):
        packet = AuthServer.generate_packet(command, data_bytes)
        client.sendall(bytes(packet))
        print("AS SEND>> ", hex(command), bytes_to_hex(packet))

    # stable across restarts, unlike hash()
    @staticmethod
    def get_account_id(username):
        return zlib.crc32((username or "").encode("ascii", errors="replace")) % 1000000

    def get_server_list(self):
        response = bytearray()
        response.append(len(self.server_options))
        response.append(self.server_options[0].server_id if self.server_options else 0)  # last server id
        for entry in self.server_options:
            response.append(entry.server_id)
            response.extend(int_to_bytes(ip_to_int(entry.server_address), 4))
            response.extend(int_to_bytes(entry.server_port, 4))
            response.append(0x00)  # age limit
            response.append(0x00)  # pk flag
            response.extend(int_to_bytes(entry.server_utilization, 2))
            response.extend(int_to_bytes(entry.server_capacity, 2))
            response.append(int(entry.server_enabled))
        return response
