"""
Tests for the 64-bit bit field
"""

from source_query.utils.bitvector import BitVector64, UINT64_MASK


class TestBitVector64:

    def test_get_and_set_fields(self):
        bits = BitVector64()
        bits[0, 0xFFFFFFFF] = 12345
        bits[32, 0xFFFFF] = 1
        bits[52, 0xF] = 1
        bits[56, 0xFF] = 1

        assert bits.data == 76561197960278073
        assert bits[0, 0xFFFFFFFF] == 12345
        assert bits[32, 0xFFFFF] == 1
        assert bits[52, 0xF] == 1
        assert bits[56, 0xFF] == 1

    def test_set_does_not_touch_neighbours(self):
        bits = BitVector64(UINT64_MASK)
        bits[32, 0xFFFFF] = 0

        assert bits[0, 0xFFFFFFFF] == 0xFFFFFFFF
        assert bits[32, 0xFFFFF] == 0
        assert bits[52, 0xF] == 0xF

    def test_value_is_masked_to_field_width(self):
        bits = BitVector64()
        bits[52, 0xF] = 0x1F
        assert bits[52, 0xF] == 0xF
        assert bits[56, 0xFF] == 0

    def test_data_kept_within_64_bits(self):
        bits = BitVector64(1 << 64 | 5)
        assert int(bits) == 5
