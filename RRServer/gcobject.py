import struct
from utility import int_to_bytes, cstring, ByteReader

# DFC: the object tree format the client uses to describe every game object.
#
# Full object:
#   [version][djb2(native class):u32][id:u32][name\0][child count:u32][children...]
#   [djb2(gc class):u32][properties...][00 00 00 00]
# Property:
#   [djb2(name):u32][type:u8][little-endian value]
#
# Component with extra data has the same header but carries [len:u32][raw bytes] ahead of
# the child list. Its children use the same component layout.

DFC_VERSION = 0x2D
END_OF_OBJECT = 0


class DfcError(Exception):
    pass


class PropertyType:
    STRING = 1
    UINT32 = 2
    INT32 = 3
    FLOAT = 4
    BOOLEAN = 5
    VECTOR3 = 6
    UINT16 = 7
    INT16 = 8
    BYTE = 9
    SBYTE = 10
    DOUBLE = 11
    VECTOR2 = 12


# struct layout for every fixed-width property type, strings are handled separately
PROPERTY_FORMATS = {
    PropertyType.UINT32: "<I",
    PropertyType.INT32: "<i",
    PropertyType.FLOAT: "<f",
    PropertyType.BOOLEAN: "<?",
    PropertyType.VECTOR3: "<3f",
    PropertyType.UINT16: "<H",
    PropertyType.INT16: "<h",
    PropertyType.BYTE: "<B",
    PropertyType.SBYTE: "<b",
    PropertyType.DOUBLE: "<d",
    PropertyType.VECTOR2: "<2f",
}

VECTOR_TYPES = (PropertyType.VECTOR2, PropertyType.VECTOR3)


# The client identifies classes and properties purely by this hash.
# Only A-Z is lower-cased, the sum wraps at 32 bits, and a zero result becomes 1.
def djb2(name, log_hashes=False):
    result = 5381
    if name:
        for character in name:
            code = ord(character)
            if 0x41 <= code <= 0x5A:
                code += 32
            result = (result * 33 + code) & 0xFFFFFFFF
        if result == 0:
            result = 1
    if log_hashes:
        print("DFC: ({:x}) {}".format(result, name))
    return result


class Property:
    name = None
    type = PropertyType.UINT32
    value = 0

    def __init__(self, name, property_type, value, name_hash=None):
        if property_type != PropertyType.STRING and property_type not in PROPERTY_FORMATS:
            raise DfcError("unknown property type {}".format(property_type))
        if property_type == PropertyType.STRING:
            if not isinstance(value, str):
                raise DfcError("property {} expects a string".format(name))
        elif property_type in VECTOR_TYPES:
            value = tuple(value)
            expected_length = 3 if property_type == PropertyType.VECTOR3 else 2
            if len(value) != expected_length:
                raise DfcError("property {} expects {} components".format(name, expected_length))
        else:
            # surfaces out of range values here instead of halfway through a send
            try:
                struct.pack(PROPERTY_FORMATS[property_type], value)
            except struct.error as e:
                raise DfcError("property {}: {}".format(name, e))
        self.name = name
        self.type = property_type
        self.value = value
        self._name_hash = name_hash

    @property
    def name_hash(self):
        if self._name_hash is not None:
            return self._name_hash
        return djb2(self.name)

    def __eq__(self, other):
        if not isinstance(other, Property):
            return NotImplemented
        return (self.name_hash, self.type, self.value) == (other.name_hash, other.type, other.value)

    def __repr__(self):
        return "Property({!r}, {}, {!r})".format(self.name or hex(self.name_hash), self.type, self.value)

    def write(self, output, log_hashes=False):
        output.extend(int_to_bytes(djb2(self.name, log_hashes) if self._name_hash is None else self._name_hash, 4))
        output.append(self.type)
        if self.type == PropertyType.STRING:
            output.extend(cstring(self.value))
        elif self.type in VECTOR_TYPES:
            output.extend(struct.pack(PROPERTY_FORMATS[self.type], *self.value))
        else:
            output.extend(struct.pack(PROPERTY_FORMATS[self.type], self.value))

    @staticmethod
    def read(reader):
        name_hash = reader.read_uint32()
        property_type = reader.read_uint8()
        if property_type == PropertyType.STRING:
            value = reader.read_cstring()
        elif property_type in PROPERTY_FORMATS:
            unpacked = reader.read_struct(PROPERTY_FORMATS[property_type])
            value = unpacked if property_type in VECTOR_TYPES else unpacked[0]
        else:
            raise DfcError("unknown property type {} at offset {}".format(property_type, reader.offset - 1))
        return Property(None, property_type, value, name_hash=name_hash)


# shorthands used by the object factories
def string_prop(name, value):
    return Property(name, PropertyType.STRING, value)


def uint32_prop(name, value):
    return Property(name, PropertyType.UINT32, value)


class GCObject:
    id = 0
    native_class = ""
    gc_class = ""
    name = ""
    version = DFC_VERSION

    def __init__(self, object_id, native_class, gc_class, name="", properties=None, children=None,
                 extra_data=b"", native_hash=None, gc_hash=None):
        self.id = object_id
        self.native_class = native_class
        self.gc_class = gc_class
        self.name = name or ""
        self.properties = list(properties or [])
        self.children = list(children or [])
        self.extra_data = bytes(extra_data)
        self._native_hash = native_hash
        self._gc_hash = gc_hash

    @property
    def native_hash(self):
        return self._native_hash if self._native_hash is not None else djb2(self.native_class)

    @property
    def gc_hash(self):
        return self._gc_hash if self._gc_hash is not None else djb2(self.gc_class)

    def add_child(self, child):
        self.children.append(child)
        return child

    def find_child(self, native_class):
        for child in self.children:
            if child.native_hash == djb2(native_class):
                return child
        return None

    # depth-first, parent before children
    def walk(self):
        yield self
        for child in self.children:
            yield from child.walk()

    # same node with only the children accepted by keep, used when a parent and the
    # objects attached to it are sent to the client separately
    def shallow_copy(self, keep):
        return GCObject(self.id, self.native_class, self.gc_class, self.name, self.properties,
                        [child for child in self.children if keep(child)], self.extra_data,
                        native_hash=self._native_hash, gc_hash=self._gc_hash)

    def __repr__(self):
        return "<GCObject id={} {} ({}) '{}' props={} children={}>".format(
            self.id, self.native_class or hex(self.native_hash), self.gc_class or hex(self.gc_hash),
            self.name, len(self.properties), len(self.children))


class DfcWriter:
    def __init__(self, log_hashes=False, log_serialise=False):
        self.log_hashes = log_hashes
        self.log_serialise = log_serialise
        self.indent = 0

    def _trace(self, obj, layout):
        if self.log_serialise:
            prefix = "\t" * self.indent
            print("{}DFC: {} ID: {} Name: {} NativeClass: {} GCClass: {} Props: {} Children: {}".format(
                prefix, layout, obj.id, obj.name, obj.native_class, obj.gc_class,
                len(obj.properties), len(obj.children)))

    def _hash(self, obj_hash, name):
        if self.log_hashes:
            print("DFC: ({:x}) {}".format(obj_hash, name))
        return obj_hash

    def _header(self, obj, output):
        output.append(obj.version)
        output.extend(int_to_bytes(self._hash(obj.native_hash, obj.native_class), 4))
        output.extend(int_to_bytes(obj.id, 4))
        output.extend(cstring(obj.name))

    def _tail(self, obj, output):
        output.extend(int_to_bytes(self._hash(obj.gc_hash, obj.gc_class), 4))
        for prop in obj.properties:
            prop.write(output, self.log_hashes)
        output.extend(int_to_bytes(END_OF_OBJECT, 4))

    def write_full(self, obj, output=None):
        if output is None:
            output = bytearray()
        self._trace(obj, "object")
        self._header(obj, output)
        output.extend(int_to_bytes(len(obj.children), 4))
        self.indent += 1
        for child in obj.children:
            self.write_full(child, output)
        self.indent -= 1
        self._tail(obj, output)
        return output

    def write_component(self, obj, output=None):
        if output is None:
            output = bytearray()
        self._trace(obj, "component")
        self._header(obj, output)
        output.extend(int_to_bytes(len(obj.extra_data), 4))
        output.extend(obj.extra_data)
        output.extend(int_to_bytes(len(obj.children), 4))
        self.indent += 1
        for child in obj.children:
            self.write_component(child, output)
        self.indent -= 1
        self._tail(obj, output)
        return output


class DfcReader:
    def __init__(self, data, offset=0):
        self.reader = ByteReader(data, offset)

    @property
    def offset(self):
        return self.reader.offset

    def _header(self):
        version = self.reader.read_uint8()
        if version != DFC_VERSION:
            raise DfcError("unsupported DFC version 0x{:02X} at offset {}".format(version, self.reader.offset - 1))
        native_hash = self.reader.read_uint32()
        object_id = self.reader.read_uint32()
        name = self.reader.read_cstring()
        return native_hash, object_id, name

    def _tail(self):
        gc_hash = self.reader.read_uint32()
        properties = []
        # a property hash is never 0, so a zero dword can only be the end marker
        while True:
            peek = self.reader.read_uint32()
            if peek == END_OF_OBJECT:
                break
            self.reader.offset -= 4
            properties.append(Property.read(self.reader))
        return gc_hash, properties

    def _read(self, component):
        try:
            native_hash, object_id, name = self._header()
            extra_data = b""
            if component:
                extra_data = self.reader.read_bytes(self.reader.read_uint32())
            child_count = self.reader.read_uint32()
            if child_count > self.reader.remaining():
                raise DfcError("child count {} larger than the remaining data".format(child_count))
            children = [self._read(component) for _ in range(child_count)]
            gc_hash, properties = self._tail()
        except IndexError as e:
            raise DfcError("truncated DFC data: {}".format(e))
        return GCObject(object_id, "", "", name, properties, children, extra_data,
                        native_hash=native_hash, gc_hash=gc_hash)

    def read_full(self):
        return self._read(component=False)

    def read_component(self):
        return self._read(component=True)


def write_gc_object(obj, log_hashes=False, log_serialise=False):
    return DfcWriter(log_hashes, log_serialise).write_full(obj)


def write_component(obj, log_hashes=False, log_serialise=False):
    return DfcWriter(log_hashes, log_serialise).write_component(obj)


def read_gc_object(data, offset=0):
    return DfcReader(data, offset).read_full()


def read_component(data, offset=0):
    return DfcReader(data, offset).read_component()
