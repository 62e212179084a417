"""
Little-Endian Named Binary Tag Writer/Reader

Structure files use the little-endian NBT dialect. A file is a single
named root tag:

- Tag header: type id (int8) + name (uint16 length + UTF-8 bytes)
- Payload, by type:
    BYTE/SHORT/INT/LONG      int8 / int16 / int32 / int64
    FLOAT/DOUBLE             float32 / float64
    BYTE_ARRAY / INT_ARRAY   int32 count + elements
    STRING                   uint16 length + UTF-8 bytes
    LIST                     element type (int8) + int32 count + payloads
    COMPOUND                 named tags, terminated by an END byte

Limitations:
- Strings are limited to 65535 encoded bytes
- Every tag type is read, but only the types structure files need
  (byte, int, long, string, list, compound) have writer classes
- Negative counts and truncated data are rejected with ValueError
"""

from enum import IntEnum
from typing import Any, Dict, Iterable, List as ListT, Optional, Tuple
import struct


class TagType(IntEnum):
    END = 0
    BYTE = 1
    SHORT = 2
    INT = 3
    LONG = 4
    FLOAT = 5
    DOUBLE = 6
    BYTE_ARRAY = 7
    STRING = 8
    LIST = 9
    COMPOUND = 10
    INT_ARRAY = 11
    LONG_ARRAY = 12


def _pack_string(text: str) -> bytes:
    raw = text.encode("utf-8")
    if len(raw) > 0xFFFF:
        raise ValueError(f"String too long for NBT: {len(raw)} bytes")
    return struct.pack('<H', len(raw)) + raw


class Tag:
    """Base class for tags."""

    tag_type = TagType.END

    def payload(self) -> bytes:
        """Pack the tag body (no type id, no name)."""
        return b''

    def pack(self, name: str = "") -> bytes:
        """Pack as a named tag."""
        return struct.pack('<b', int(self.tag_type)) + _pack_string(name) + self.payload()


class _Scalar(Tag):
    fmt = '<i'

    def __init__(self, value):
        self.value = value

    def payload(self) -> bytes:
        return struct.pack(self.fmt, self.value)

    def __repr__(self):
        return f"{type(self).__name__}({self.value!r})"


class Byte(_Scalar):
    tag_type = TagType.BYTE
    fmt = '<b'


class Int(_Scalar):
    tag_type = TagType.INT
    fmt = '<i'


class Long(_Scalar):
    tag_type = TagType.LONG
    fmt = '<q'


class String(Tag):
    tag_type = TagType.STRING

    def __init__(self, value: str):
        self.value = value

    def payload(self) -> bytes:
        return _pack_string(self.value)


class List(Tag):
    """
    Homogeneous list of unnamed tags.

    An empty list keeps its declared element type (END by convention).
    """

    tag_type = TagType.LIST

    def __init__(self, element_type: TagType = TagType.END, items: Optional[Iterable[Tag]] = None):
        self.element_type = TagType(element_type)
        self.items: ListT[Tag] = []
        for item in items or ():
            self.append(item)

    def append(self, item: Tag) -> "List":
        if item.tag_type != self.element_type:
            raise TypeError(
                f"List of {self.element_type.name} cannot hold {item.tag_type.name}"
            )
        self.items.append(item)
        return self

    def __len__(self):
        return len(self.items)

    def payload(self) -> bytes:
        return (struct.pack('<bi', int(self.element_type), len(self.items)) +
                b''.join(item.payload() for item in self.items))


class IntList(List):
    """INT list built straight from Python ints (used for large index lists)."""

    def __init__(self, values: Iterable[int] = ()):
        super().__init__(TagType.INT)
        self.values = [int(v) for v in values]

    def append(self, item: Tag) -> "List":
        if item.tag_type != TagType.INT:
            raise TypeError(f"IntList cannot hold {item.tag_type.name}")
        self.values.append(item.value)
        return self

    def __len__(self):
        return len(self.values)

    def payload(self) -> bytes:
        return struct.pack(f'<bi{len(self.values)}i', int(TagType.INT), len(self.values), *self.values)


class Compound(Tag):
    """Ordered mapping of names to tags."""

    tag_type = TagType.COMPOUND

    def __init__(self, entries: Optional[Dict[str, Tag]] = None):
        self.entries: Dict[str, Tag] = dict(entries or {})

    def add(self, name: str, tag: Tag) -> "Compound":
        """Add a child tag; returns self for chaining."""
        self.entries[name] = tag
        return self

    def __getitem__(self, name: str) -> Tag:
        return self.entries[name]

    def payload(self) -> bytes:
        return (b''.join(tag.pack(name) for name, tag in self.entries.items()) +
                struct.pack('<b', int(TagType.END)))


def dumps(root: Tag, name: str = "") -> bytes:
    """Serialize a root tag."""
    return root.pack(name)


class _Reader:
    """Cursor over an NBT byte string."""

    _SCALARS = {
        TagType.BYTE: '<b',
        TagType.SHORT: '<h',
        TagType.INT: '<i',
        TagType.LONG: '<q',
        TagType.FLOAT: '<f',
        TagType.DOUBLE: '<d',
    }

    def __init__(self, data: bytes):
        self.data = data
        self.offset = 0

    def unpack(self, fmt: str) -> Tuple:
        size = struct.calcsize(fmt)
        if self.offset + size > len(self.data):
            raise ValueError("Unexpected end of NBT data")
        values = struct.unpack_from(fmt, self.data, self.offset)
        self.offset += size
        return values

    def count(self) -> int:
        (count,) = self.unpack('<i')
        if count < 0:
            raise ValueError(f"Negative NBT length: {count}")
        return count

    def string(self) -> str:
        (length,) = self.unpack('<H')
        raw = self.data[self.offset:self.offset + length]
        if len(raw) != length:
            raise ValueError("Unexpected end of NBT data")
        self.offset += length
        return raw.decode("utf-8")

    def payload(self, tag_type: int) -> Any:
        tag_type = TagType(tag_type)

        if tag_type in self._SCALARS:
            return self.unpack(self._SCALARS[tag_type])[0]

        if tag_type is TagType.STRING:
            return self.string()

        if tag_type in (TagType.BYTE_ARRAY, TagType.INT_ARRAY, TagType.LONG_ARRAY):
            count = self.count()
            code = {TagType.BYTE_ARRAY: 'b', TagType.INT_ARRAY: 'i', TagType.LONG_ARRAY: 'q'}[tag_type]
            return list(self.unpack(f'<{count}{code}'))

        if tag_type is TagType.LIST:
            (element_type,) = self.unpack('<b')
            count = self.count()
            if element_type == TagType.INT:
                return list(self.unpack(f'<{count}i'))
            return [self.payload(element_type) for _ in range(count)]

        if tag_type is TagType.COMPOUND:
            result = {}
            while True:
                (child_type,) = self.unpack('<b')
                if child_type == TagType.END:
                    return result
                child_name = self.string()
                result[child_name] = self.payload(child_type)

        raise ValueError(f"Cannot read payload of {tag_type.name}")


def loads(data: bytes) -> Tuple[str, Any]:
    """
    Parse a serialized root tag.

    Returns:
        Tuple of (root name, value) where compounds become dicts, lists
        and arrays become lists, and scalars become int/float/str
    """
    reader = _Reader(data)
    (tag_type,) = reader.unpack('<b')
    if tag_type == TagType.END:
        return "", None
    name = reader.string()
    return name, reader.payload(tag_type)
