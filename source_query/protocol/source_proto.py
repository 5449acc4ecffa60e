"""
Source query protocol utilities

Handles framing shared by the server query and master server clients:
packet headers, null-terminated strings, little-endian reads, split
packet reassembly and backslash-delimited filter strings.
"""

import bz2
import logging
import struct
import zlib

logger = logging.getLogger(__name__)


# Packet headers (little-endian int32)
SINGLE_PACKET_HEADER = -1  # FF FF FF FF
SPLIT_PACKET_HEADER = -2   # FE FF FF FF

SINGLE_PACKET_PREFIX = b'\xFF\xFF\xFF\xFF'

# Top bit of the split packet request id marks a bzip2 payload
COMPRESSED_FLAG = 0x80000000


class PacketError(Exception):
    """Raised when a packet is truncated, malformed or fails verification."""


# =============================================================================
# Strings
# =============================================================================

def encode_string(text: str) -> bytes:
    """
    Encode a null-terminated string.

    Example:
        >>> encode_string('0.0.0.0:0')
        b'0.0.0.0:0\\x00'
    """
    return text.encode('utf-8') + b'\x00'


# =============================================================================
# Reader
# =============================================================================

class PacketReader:
    """
    Sequential little-endian reader over a received packet.

    Every read raises PacketError when the packet is too short.
    """

    def __init__(self, data: bytes, offset: int = 0):
        self.data = data
        self.offset = offset

    @property
    def remaining(self) -> int:
        return len(self.data) - self.offset

    def _unpack(self, fmt: str):
        size = struct.calcsize(fmt)
        if self.remaining < size:
            raise PacketError(
                f"Packet truncated: need {size} bytes at offset {self.offset}, "
                f"have {self.remaining}"
            )
        value = struct.unpack_from(fmt, self.data, self.offset)[0]
        self.offset += size
        return value

    def read_byte(self) -> int:
        return self._unpack('<B')

    def read_bool(self) -> bool:
        return self._unpack('<B') != 0

    def read_char(self) -> str:
        return chr(self._unpack('<B'))

    def read_short(self) -> int:
        return self._unpack('<h')

    def read_ushort(self) -> int:
        return self._unpack('<H')

    def read_long(self) -> int:
        return self._unpack('<i')

    def read_ulong(self) -> int:
        return self._unpack('<I')

    def read_ulonglong(self) -> int:
        return self._unpack('<Q')

    def read_float(self) -> float:
        return self._unpack('<f')

    def read_bytes(self, size: int = None) -> bytes:
        """Read size bytes, or everything left when size is None."""
        if size is None:
            size = self.remaining
        if self.remaining < size:
            raise PacketError(f"Packet truncated: need {size} bytes, have {self.remaining}")
        value = self.data[self.offset:self.offset + size]
        self.offset += size
        return value

    def read_string(self) -> str:
        """Read a null-terminated UTF-8 string."""
        end = self.data.find(b'\x00', self.offset)
        if end == -1:
            raise PacketError(f"Unterminated string at offset {self.offset}")
        value = self.data[self.offset:end].decode('utf-8', errors='replace')
        self.offset = end + 1
        return value


def read_header(data: bytes) -> int:
    """Read the 4-byte packet header."""
    if len(data) < 4:
        raise PacketError(f"Packet too short for header: {len(data)} bytes")
    return struct.unpack_from('<i', data)[0]


# =============================================================================
# Split packets
# =============================================================================

class SplitFragment:
    """
    One fragment of a split response.

    Layout after the FE FF FF FF header:
        request id      int32 (top bit set when compressed)
        total           byte
        number          byte
        split size      int16
        [number 0 of a compressed response only]
        decompressed    int32
        checksum        uint32 (CRC32 of the decompressed payload)
        payload         remaining bytes
    """

    def __init__(self, request_id: int, total: int, number: int, split_size: int,
                 payload: bytes, decompressed_size: int = None, checksum: int = None):
        self.request_id = request_id
        self.total = total
        self.number = number
        self.split_size = split_size
        self.payload = payload
        self.decompressed_size = decompressed_size
        self.checksum = checksum

    @property
    def compressed(self) -> bool:
        return (self.request_id & COMPRESSED_FLAG) != 0

    @classmethod
    def parse(cls, data: bytes) -> 'SplitFragment':
        """
        Parse a split packet datagram (header included).

        Raises:
            PacketError: If the header is wrong or the fragment is truncated
        """
        if read_header(data) != SPLIT_PACKET_HEADER:
            raise PacketError("Expected split packet header")

        reader = PacketReader(data, 4)
        request_id = reader.read_ulong()
        total = reader.read_byte()
        number = reader.read_byte()
        split_size = reader.read_short()

        if total == 0 or number >= total:
            raise PacketError(f"Invalid fragment {number} of {total}")

        decompressed_size = None
        checksum = None
        if (request_id & COMPRESSED_FLAG) and number == 0:
            decompressed_size = reader.read_long()
            checksum = reader.read_ulong()

        return cls(request_id, total, number, split_size, reader.read_bytes(),
                   decompressed_size, checksum)


class SplitPacketAssembly:
    """
    Buffers the fragments of one split response until all have arrived.

    The fragment count is fixed by the first fragment; a fragment that
    declares a different count aborts the assembly.
    """

    def __init__(self, total: int):
        self.total = total
        self.received = 0
        self.fragments = [None] * total
        self.request_id = None
        self.compressed = False
        self.decompressed_size = None
        self.checksum = None

    @property
    def complete(self) -> bool:
        return self.received == self.total

    def add(self, fragment: SplitFragment):
        """
        Store a fragment.

        Raises:
            PacketError: If the fragment disagrees with the first one
        """
        if self.request_id is not None and fragment.request_id != self.request_id:
            raise PacketError(
                f"Fragment for request {fragment.request_id:08x} in response {self.request_id:08x}"
            )
        if fragment.total != self.total:
            raise PacketError(
                f"Fragment count changed from {self.total} to {fragment.total}"
            )

        if self.request_id is None:
            self.request_id = fragment.request_id
        if fragment.compressed:
            self.compressed = True
        if fragment.checksum is not None:
            self.decompressed_size = fragment.decompressed_size
            self.checksum = fragment.checksum

        if self.fragments[fragment.number] is not None:
            logger.debug(f"[SPLIT] Duplicate fragment {fragment.number}, ignoring")
            return

        self.fragments[fragment.number] = fragment.payload
        self.received += 1

    def payload(self) -> bytes:
        """
        Join the fragments in index order, decompressing if needed.

        Raises:
            PacketError: If fragments are missing, decompression fails or
                the checksum does not match
        """
        if not self.complete:
            raise PacketError(f"Missing fragments: {self.received} of {self.total}")

        buffer = b''.join(self.fragments)
        if not self.compressed:
            return buffer

        return decompress_payload(buffer, self.decompressed_size, self.checksum)


def decompress_payload(buffer: bytes, decompressed_size: int, checksum: int) -> bytes:
    """
    Decompress a bzip2 payload and verify its size and CRC32.

    Output is capped one byte past the declared size.

    Raises:
        PacketError: If the data is not valid bzip2 or does not verify
    """
    if checksum is None:
        raise PacketError("Compressed response without checksum")

    if decompressed_size is None or decompressed_size < 0:
        raise PacketError(f"Invalid decompressed size {decompressed_size}")

    try:
        data = bz2.BZ2Decompressor().decompress(buffer, max_length=decompressed_size + 1)
    except (OSError, ValueError) as e:
        raise PacketError(f"Decompression failed: {e}")

    if len(data) != decompressed_size:
        raise PacketError(
            f"Decompressed size mismatch: expected {decompressed_size}, got {len(data)}"
        )

    actual = zlib.crc32(data) & 0xFFFFFFFF
    if actual != checksum:
        raise PacketError(f"Checksum mismatch: expected {checksum:08x}, got {actual:08x}")

    return data


# =============================================================================
# Filter strings
# =============================================================================

def build_filter_message(params: list) -> str:
    """
    Build a backslash-delimited filter string.

    Args:
        params: Ordered (key, value) pairs

    Returns:
        Filter string

    Example:
        >>> build_filter_message([('type', 'd'), ('appid', 10)])
        '\\\\type\\\\d\\\\appid\\\\10'
    """
    msg = ''
    for key, value in params:
        msg += f'\\{key}\\{value}'
    return msg


def parse_filter_message(msg: str) -> list:
    """
    Parse a backslash-delimited filter string into (key, value) pairs.

    Example:
        >>> parse_filter_message('\\\\gamedir\\\\cstrike\\\\secure\\\\1')
        [('gamedir', 'cstrike'), ('secure', '1')]

    Raises:
        ValueError: If a key has no value
    """
    parts = msg.split('\\')

    # Remove empty first element if present
    if parts and parts[0] == '':
        parts = parts[1:]

    if len(parts) % 2 != 0:
        raise ValueError(f"Unbalanced filter string: {msg!r}")

    return [(parts[i], parts[i + 1]) for i in range(0, len(parts), 2)]
