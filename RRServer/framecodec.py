import zlib
from utility import int_to_bytes, bytes_to_int

# Wire framing used by the game server. Two independent lanes, picked by the first byte:
#
# Lane A: 0a RR RR RR LL LL LL LL 00 SS 00 UU UU UU UU [deflate...]
#   RR = route id (u24), echoed back on every frame sent to this client
#   LL = deflate length + 7 (u32), SS = sub-type, UU = inflated length (u32)
#
# Lane E: 0e DD DD DD LL LL LL 00 SS SS SS 01 00 01 00 00 UU UU UU UU [deflate...]
#   DD = destination (u24), LL = deflate length + 12 (u24), SS = source (u24)
#
# The inflated payload always starts with [channel][message type][body...]

LANE_A = 0x0A
LANE_E = 0x0E

LANE_A_HEADER_SIZE = 8  # type, route id, length
LANE_A_LENGTH_BIAS = 7
LANE_E_HEADER_SIZE = 8  # type, destination, length, pad
LANE_E_LENGTH_BIAS = 12
LANE_E_MARKER = bytes.fromhex("01 00 01 00 00")

# Anything larger can never come from the client, so the stream cannot be trusted past it
MAX_FRAME_SIZE = 0x100000

SUBTYPE_INITIAL_LOGIN = 0x00
SUBTYPE_KEEPALIVE = 0x03
SUBTYPE_MESSAGE = 0x0F

SERVER_ROUTE_ID = 0x000000


class MalformedFrameError(Exception):
    # the frame was consumed, but its content contradicts its own header
    pass


class FrameOverflowError(Exception):
    # the declared length can not be honoured, the connection must be dropped
    pass


class Frame:
    lane = None
    route_id = 0
    dest_id = 0
    sub_type = 0
    payload = b""

    def __init__(self, lane, route_id, payload, sub_type=0, dest_id=0):
        self.lane = lane
        self.route_id = route_id
        self.payload = bytes(payload)
        self.sub_type = sub_type
        self.dest_id = dest_id

    def has_message(self):
        return len(self.payload) >= 2

    @property
    def channel(self):
        return self.payload[0] if self.has_message() else None

    @property
    def message_type(self):
        return self.payload[1] if self.has_message() else None

    @property
    def body(self):
        return self.payload[2:]

    def __repr__(self):
        lane_name = {LANE_A: "A", LANE_E: "E"}.get(self.lane, "?")
        return "<Frame lane={} route={:06X} sub={:02X} channel={} type={} body={}B>".format(
            lane_name, self.route_id, self.sub_type, self.channel, self.message_type, len(self.body))


# build [channel][message type][body]
def inner_payload(channel, message_type, body=b""):
    payload = bytearray()
    payload.append(channel)
    payload.append(message_type)
    payload.extend(body)
    return payload


def encode_lane_a(route_id, sub_type, payload):
    compressed = zlib.compress(bytes(payload))
    frame = bytearray()
    frame.append(LANE_A)
    frame.extend(int_to_bytes(route_id, 3))
    frame.extend(int_to_bytes(len(compressed) + LANE_A_LENGTH_BIAS, 4))
    frame.append(0x00)
    frame.append(sub_type)
    frame.append(0x00)
    frame.extend(int_to_bytes(len(payload), 4))
    frame.extend(compressed)
    return frame


def encode_lane_e(dest_id, source_id, payload):
    compressed = zlib.compress(bytes(payload))
    frame = bytearray()
    frame.append(LANE_E)
    frame.extend(int_to_bytes(dest_id, 3))
    frame.extend(int_to_bytes(len(compressed) + LANE_E_LENGTH_BIAS, 3))
    frame.append(0x00)
    frame.extend(int_to_bytes(source_id, 3))
    frame.extend(LANE_E_MARKER)
    frame.extend(int_to_bytes(len(payload), 4))
    frame.extend(compressed)
    return frame


def inflate(compressed, expected_length):
    try:
        decompressor = zlib.decompressobj()
        payload = decompressor.decompress(compressed)
        payload += decompressor.flush()
    except zlib.error as e:
        raise MalformedFrameError("deflate stream is corrupt: {}".format(e))
    if not decompressor.eof:
        raise MalformedFrameError("deflate stream ends early")
    if decompressor.unused_data:
        raise MalformedFrameError("{} bytes after deflate stream".format(len(decompressor.unused_data)))
    if len(payload) != expected_length:
        raise MalformedFrameError("inflated {} bytes, header promised {}".format(len(payload), expected_length))
    return payload


def decode_lane_a(frame_bytes):
    route_id = bytes_to_int(frame_bytes[1:4], 3)
    length_field = bytes_to_int(frame_bytes[4:8], 4)
    if length_field < LANE_A_LENGTH_BIAS:
        raise MalformedFrameError("lane A length {} is below {}".format(length_field, LANE_A_LENGTH_BIAS))
    sub_type = frame_bytes[9]
    uncompressed_length = bytes_to_int(frame_bytes[11:15], 4)
    compressed = frame_bytes[LANE_A_HEADER_SIZE + LANE_A_LENGTH_BIAS:]
    return Frame(LANE_A, route_id, inflate(compressed, uncompressed_length), sub_type=sub_type)


def decode_lane_e(frame_bytes):
    dest_id = bytes_to_int(frame_bytes[1:4], 3)
    length_field = bytes_to_int(frame_bytes[4:7], 3)
    if length_field < LANE_E_LENGTH_BIAS:
        raise MalformedFrameError("lane E length {} is below {}".format(length_field, LANE_E_LENGTH_BIAS))
    source_id = bytes_to_int(frame_bytes[8:11], 3)
    if bytes(frame_bytes[11:16]) != LANE_E_MARKER:
        raise MalformedFrameError("lane E marker mismatch")
    uncompressed_length = bytes_to_int(frame_bytes[16:20], 4)
    compressed = frame_bytes[LANE_E_HEADER_SIZE + LANE_E_LENGTH_BIAS:]
    return Frame(LANE_E, source_id, inflate(compressed, uncompressed_length), dest_id=dest_id)


class FrameReader:
    # Accumulates raw socket bytes and hands out one frame at a time.
    # A frame is only taken off the buffer once every byte its header declares has arrived,
    # and never more than that, so a bad frame cannot swallow the next one.
    def __init__(self, max_frame_size=MAX_FRAME_SIZE):
        self.buffer = bytearray()
        self.max_frame_size = max_frame_size

    def feed(self, data):
        self.buffer.extend(data)

    def pending(self):
        return len(self.buffer)

    def _take(self, size):
        taken = bytes(self.buffer[:size])
        del self.buffer[:size]
        return taken

    # offset of the first byte at or after start that could open a frame
    def _next_frame_start(self, start):
        for offset in range(start, len(self.buffer)):
            if self.buffer[offset] in (LANE_A, LANE_E):
                return offset
        return len(self.buffer)

    def _header_in_sync(self, frame_type):
        if frame_type == LANE_A:
            return self.buffer[8] == 0x00 and self.buffer[10] == 0x00
        return self.buffer[7] == 0x00 and bytes(self.buffer[11:16]) == LANE_E_MARKER

    # the deflate stream knows where it ends; finishing before the declared length means the
    # header claims bytes that belong to whatever comes next
    def _check_declared_length(self, data_start, frame_size):
        decompressor = zlib.decompressobj()
        pending = bytes(self.buffer[data_start:frame_size])
        try:
            while pending and not decompressor.eof:
                decompressor.decompress(pending, 0x10000)
                pending = decompressor.unconsumed_tail
        except zlib.error:
            # corrupt, but the declared length may still be right; decode rejects it once complete
            return
        if decompressor.eof:
            stream_end = min(len(self.buffer), frame_size) - len(decompressor.unused_data)
            if stream_end < frame_size:
                raise FrameOverflowError("deflate stream ends after {} bytes, frame declares {}".format(
                    stream_end - data_start, frame_size - data_start))

    def next_frame(self):
        if not self.buffer:
            return None

        frame_type = self.buffer[0]
        if frame_type not in (LANE_A, LANE_E):
            # no length to go by, the message runs up to the next byte that could open a frame
            return Frame(None, 0, self._take(self._next_frame_start(1)), sub_type=frame_type)

        if frame_type == LANE_A:
            header_size, bias = LANE_A_HEADER_SIZE, LANE_A_LENGTH_BIAS
            if len(self.buffer) < header_size:
                return None
            length_field = bytes_to_int(self.buffer[4:8], 4)
        else:
            header_size, bias = LANE_E_HEADER_SIZE, LANE_E_LENGTH_BIAS
            if len(self.buffer) < header_size:
                return None
            length_field = bytes_to_int(self.buffer[4:7], 3)
        if length_field > self.max_frame_size:
            raise FrameOverflowError("declared frame length {} exceeds {}".format(length_field, self.max_frame_size))
        frame_size = header_size + length_field

        # a length field under the bias still consumes exactly what it declared
        if length_field < bias:
            if len(self.buffer) < frame_size:
                return None
            self._take(frame_size)
            raise MalformedFrameError("frame type 0x{:02X} is {} bytes, too short for its header".format(
                frame_type, frame_size))

        if len(self.buffer) < header_size + bias:
            return None
        if not self._header_in_sync(frame_type):
            self._take(1)
            raise MalformedFrameError("frame type 0x{:02X} header is out of sync, skipping a byte".format(frame_type))

        self._check_declared_length(header_size + bias, frame_size)
        if len(self.buffer) < frame_size:
            return None

        frame_bytes = self._take(frame_size)
        if frame_type == LANE_A:
            return decode_lane_a(frame_bytes)
        return decode_lane_e(frame_bytes)


# decode one complete frame held in memory
def decode_frame(data):
    reader = FrameReader()
    reader.feed(data)
    frame = reader.next_frame()
    if frame is None:
        raise MalformedFrameError("incomplete frame ({} bytes)".format(len(data)))
    return frame
