import struct
import unittest

from pastebin_data_model.paste import Paste, U64_MAX
from pastebin_data_model.paste_codec import PasteCodec, HEADER_SIZE, CHECKSUM_SIZE, MAGIC_BYTES
from pastebin_exception_model.exception import CorruptRecordError, OversizeError, InvalidInputError


class TestPasteCodec(unittest.TestCase):
    def setUp(self):
        self.codec = PasteCodec()

    def test_round_trip(self):
        """Decoding an encoded paste yields an equal paste"""
        for paste in (
            Paste(id=0, content="hello", timestamp=0),
            Paste(id=U64_MAX, content="x", timestamp=U64_MAX),
            Paste(id=42, content="héllo wörld ✓ 🐍\n\ttabs", timestamp=1_700_000_000_000_000_000),
        ):
            with self.subTest(paste=paste):
                self.assertEqual(self.codec.decode(self.codec.encode(paste)), paste)

    def test_encoded_layout(self):
        """Header carries magic, id, timestamp and the content byte length"""
        data = self.codec.encode(Paste(id=7, content="abc", timestamp=99))
        magic, paste_id, timestamp, length = struct.unpack('<4s Q Q H', data[:HEADER_SIZE])
        self.assertEqual(magic, MAGIC_BYTES)
        self.assertEqual((paste_id, timestamp, length), (7, 99, 3))
        self.assertEqual(len(data), HEADER_SIZE + 3 + CHECKSUM_SIZE)
        self.assertEqual(self.codec.encoded_size("abc"), len(data))

    def test_max_content_fits_exactly(self):
        content = "a" * self.codec.max_content_bytes
        data = self.codec.encode(Paste(id=1, content=content, timestamp=1))
        self.assertEqual(len(data), self.codec.max_record_size)

    def test_oversize_rejected_not_truncated(self):
        content = "a" * (self.codec.max_content_bytes + 1)
        with self.assertRaises(OversizeError) as ctx:
            self.codec.encode(Paste(id=1, content=content, timestamp=1))
        self.assertEqual(ctx.exception.limit, 1024)
        self.assertEqual(ctx.exception.size, 1025)

    def test_oversize_counts_utf8_bytes(self):
        # 3 bytes per character in UTF-8
        content = "€" * (self.codec.max_content_bytes // 3 + 1)
        with self.assertRaises(OversizeError):
            self.codec.check_size(content)

    def test_out_of_range_id_rejected(self):
        with self.assertRaises(InvalidInputError):
            self.codec.encode(Paste(id=-1, content="a", timestamp=0))
        with self.assertRaises(InvalidInputError):
            self.codec.encode(Paste(id=U64_MAX + 1, content="a", timestamp=0))

    def test_lone_surrogate_rejected(self):
        for content in ("abc\ud800", "\udfff"):
            with self.subTest(content=content):
                with self.assertRaises(InvalidInputError) as ctx:
                    self.codec.check_size(content)
                self.assertEqual(ctx.exception.reason, "encoding")
                with self.assertRaises(InvalidInputError):
                    self.codec.encode(Paste(id=1, content=content, timestamp=1))

    def test_decode_short_buffer(self):
        with self.assertRaises(CorruptRecordError):
            self.codec.decode(b"PSTE")

    def test_decode_bad_magic(self):
        data = bytearray(self.codec.encode(Paste(id=1, content="abc", timestamp=1)))
        data[0:4] = b"XXXX"
        with self.assertRaises(CorruptRecordError):
            self.codec.decode(bytes(data))

    def test_decode_flipped_content_byte(self):
        data = bytearray(self.codec.encode(Paste(id=3, content="abc", timestamp=1)))
        data[HEADER_SIZE] ^= 0xFF
        with self.assertRaises(CorruptRecordError) as ctx:
            self.codec.decode(bytes(data))
        self.assertEqual(ctx.exception.paste_id, 3)

    def test_decode_length_mismatch(self):
        data = self.codec.encode(Paste(id=1, content="abc", timestamp=1))
        with self.assertRaises(CorruptRecordError):
            self.codec.decode(data + b"\x00")
        with self.assertRaises(CorruptRecordError):
            self.codec.decode(data[:-1])

    def test_invalid_bound_rejected(self):
        with self.assertRaises(ValueError):
            PasteCodec(max_record_size=HEADER_SIZE + CHECKSUM_SIZE)


if __name__ == '__main__':
    unittest.main()
