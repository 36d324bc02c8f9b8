import struct


# convert a bytes-like input into a hex-string
def bytes_to_hex(input_bytes):
    return "".join("{:02X}".format(b) for b in input_bytes)


# convert an integer into a series of bytes, little-endian unless asked otherwise
# entity ids inside the ClientEntity opcodes are the only big-endian field on the wire
def int_to_bytes(input_integer, size, big_endian=False):
    output_bytes = bytearray()
    if big_endian:
        for i in range(size):
            output_bytes.insert(0, input_integer & 0xff)
            input_integer = input_integer >> 8
    else:
        for i in range(size):
            output_bytes.append(input_integer & 0xff)
            input_integer = input_integer >> 8
    return output_bytes


# convert a series of bytes into an integer given a size
def bytes_to_int(input_bytes, size, big_endian=False):
    if len(input_bytes) < size:
        raise ValueError("bytes_to_int: need {} bytes, got {}".format(size, len(input_bytes)))
    output_int = 0
    for i in range(size):
        if big_endian:
            output_int = (output_int << 8) | input_bytes[i]
        else:
            output_int |= input_bytes[i] << (i * 8)
    return output_int


# null-terminated ascii string
def cstring(text):
    output_bytes = bytearray()
    if text:
        output_bytes.extend(text.encode("ascii"))
    output_bytes.append(0x00)
    return output_bytes


# goes through as many bytes as possible and creates a string, stopping at the first null terminator
def string_decode(input_bytes):
    result = ""
    for input_byte in input_bytes:
        if input_byte != 0:
            result += chr(input_byte)
        else:
            return result
    return result


# names that end up in a cstring must survive the ascii encode
def ascii_name(text):
    return (text or "").encode("ascii", errors="replace").decode("ascii")


# converts a string IP into its little-endian DWORD representation
def ip_to_int(in_ip):
    ip_bytes = bytearray()
    ip_bytes.extend(map(int, in_ip.split('.')))
    return bytes_to_int(ip_bytes, 4)


class ByteReader:
    # cursor over a received buffer. Running off the end raises IndexError so callers can
    # translate it into their own error type
    def __init__(self, data, offset=0):
        self.data = bytes(data)
        self.offset = offset

    def remaining(self):
        return len(self.data) - self.offset

    def read_bytes(self, length):
        if length < 0 or self.remaining() < length:
            raise IndexError("read past end of buffer ({} wanted, {} left)".format(length, self.remaining()))
        value = self.data[self.offset:self.offset + length]
        self.offset += length
        return value

    def read_int(self, size, big_endian=False):
        return bytes_to_int(self.read_bytes(size), size, big_endian=big_endian)

    def read_uint8(self):
        return self.read_int(1)

    def read_uint16(self):
        return self.read_int(2)

    def read_uint32(self):
        return self.read_int(4)

    def read_struct(self, fmt):
        size = struct.calcsize(fmt)
        return struct.unpack(fmt, self.read_bytes(size))

    def read_cstring(self):
        end = self.data.find(b"\x00", self.offset)
        if end == -1:
            raise IndexError("unterminated string at offset {}".format(self.offset))
        value = self.data[self.offset:end].decode("ascii", errors="replace")
        self.offset = end + 1
        return value

    def read_to_end(self):
        return self.read_bytes(self.remaining())
