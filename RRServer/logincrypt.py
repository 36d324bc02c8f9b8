from Crypto.Cipher import DES
from utility import string_decode

# fixed key for the login block -- hardcoded in the client
LOGIN_KEY = b"TEST\x00\x00\x00\x00"
LOGIN_BLOCK_SIZE = 0x18
LOGIN_TAIL_SIZE = 0x06
USERNAME_SIZE = 14
PASSWORD_SIZE = 16


def des_decrypt_block(block, key=LOGIN_KEY):
    cipher = DES.new(key, DES.MODE_ECB)
    return cipher.decrypt(bytes(block))


def des_encrypt_block(block, key=LOGIN_KEY):
    cipher = DES.new(key, DES.MODE_ECB)
    return cipher.encrypt(bytes(block))


# The client DES-encrypts the first 24 bytes of [username:14][password:16] and sends the last 6 in the clear
def decode_login(login_block, tail):
    if len(login_block) < LOGIN_BLOCK_SIZE or len(tail) < LOGIN_TAIL_SIZE:
        raise ValueError("login block needs {}+{} bytes".format(LOGIN_BLOCK_SIZE, LOGIN_TAIL_SIZE))
    plain = bytearray(des_decrypt_block(login_block[:LOGIN_BLOCK_SIZE]))
    plain.extend(tail[:LOGIN_TAIL_SIZE])
    username = string_decode(plain[0:USERNAME_SIZE])
    password = string_decode(plain[USERNAME_SIZE:USERNAME_SIZE + PASSWORD_SIZE])
    return username, password


# what the client does, handy for test clients
def encode_login(username, password):
    plain = bytearray()
    plain.extend(username.encode("ascii")[:USERNAME_SIZE].ljust(USERNAME_SIZE, b"\x00"))
    plain.extend(password.encode("ascii")[:PASSWORD_SIZE].ljust(PASSWORD_SIZE, b"\x00"))
    return des_encrypt_block(plain[:LOGIN_BLOCK_SIZE]), bytes(plain[LOGIN_BLOCK_SIZE:])
