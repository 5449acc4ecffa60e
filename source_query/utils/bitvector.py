"""
Fixed-width 64-bit bit field

Used by the SteamID codec to pack account, instance, type and universe
into a single unsigned 64-bit word.
"""

UINT64_MASK = 0xFFFFFFFFFFFFFFFF


class BitVector64:
    """
    Unsigned 64-bit value with named sub-ranges.

    Sub-ranges are addressed with an (offset, mask) pair, where offset is
    the bit position of the lowest bit and mask is the unshifted width mask.

    Example:
        >>> bits = BitVector64()
        >>> bits[32, 0xFFFFF] = 1
        >>> hex(bits.data)
        '0x100000000'
        >>> bits[32, 0xFFFFF]
        1
    """

    def __init__(self, value: int = 0):
        self.data = value

    @property
    def data(self) -> int:
        return self._data

    @data.setter
    def data(self, value: int):
        self._data = int(value) & UINT64_MASK

    def __getitem__(self, key: tuple) -> int:
        offset, mask = key
        return (self._data >> offset) & mask

    def __setitem__(self, key: tuple, value: int):
        offset, mask = key
        self.data = (self._data & ~(mask << offset)) | ((int(value) & mask) << offset)

    def __int__(self):
        return self._data

    def __repr__(self):
        return f"<BitVector64 0x{self._data:016x}>"
