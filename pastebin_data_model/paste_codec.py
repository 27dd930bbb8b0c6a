import struct
import zlib

from pastebin_data_model.paste import Paste, U64_MAX
from pastebin_exception_model.exception import CorruptRecordError, OversizeError, InvalidInputError

# Serialization constants
MAGIC_BYTES: bytes = b'PSTE'
HEADER_FORMAT: str = '<4s Q Q H'  # magic, id, timestamp, content length
HEADER_SIZE: int = struct.calcsize(HEADER_FORMAT)
CHECKSUM_FORMAT: str = '<I'
CHECKSUM_SIZE: int = struct.calcsize(CHECKSUM_FORMAT)

DEFAULT_MAX_RECORD_SIZE: int = 1024


class PasteCodec:
    """
    Encodes and decodes Paste records to and from a bounded byte buffer.

    Format:
    - 4 bytes: magic bytes ('PSTE')
    - 8 bytes: paste id (unsigned, little endian)
    - 8 bytes: timestamp (unsigned, little endian)
    - 2 bytes: content length in bytes
    - N bytes: UTF-8 content
    - 4 bytes: CRC32 of everything above

    The encoding is self-describing and carries no version field. Every encoded
    record is at most ``max_record_size`` bytes; larger records are rejected.
    """

    def __init__(self, max_record_size: int = DEFAULT_MAX_RECORD_SIZE):
        if max_record_size <= HEADER_SIZE + CHECKSUM_SIZE:
            raise ValueError(f"max_record_size must exceed {HEADER_SIZE + CHECKSUM_SIZE} bytes")
        if max_record_size - HEADER_SIZE - CHECKSUM_SIZE > 0xFFFF:
            raise ValueError("max_record_size leaves more content room than the length field can describe")
        self._max_record_size = max_record_size

    @property
    def max_record_size(self) -> int:
        return self._max_record_size

    @property
    def max_content_bytes(self) -> int:
        """Largest UTF-8 content length that still fits in one record."""
        return self._max_record_size - HEADER_SIZE - CHECKSUM_SIZE

    @staticmethod
    def _content_bytes(content: str) -> bytes:
        try:
            return content.encode('utf-8')
        except UnicodeEncodeError as e:
            # Lone surrogates have no UTF-8 form
            raise InvalidInputError(f"Content is not valid UTF-8: {e.reason} at position {e.start}",
                                    reason="encoding") from e

    def encoded_size(self, content: str) -> int:
        """Size of the record that would hold ``content``; independent of id and timestamp."""
        return HEADER_SIZE + len(self._content_bytes(content)) + CHECKSUM_SIZE

    def check_size(self, content: str) -> None:
        size = self.encoded_size(content)
        if size > self._max_record_size:
            raise OversizeError("Encoded paste exceeds the maximum record size",
                                size=size, limit=self._max_record_size)

    def encode(self, paste: Paste) -> bytes:
        if not 0 <= paste.id <= U64_MAX:
            raise InvalidInputError(f"Paste id {paste.id} is outside the unsigned 64-bit range", reason="id")
        if not 0 <= paste.timestamp <= U64_MAX:
            raise InvalidInputError(f"Timestamp {paste.timestamp} is outside the unsigned 64-bit range",
                                    reason="timestamp")

        content_b = self._content_bytes(paste.content)
        size = HEADER_SIZE + len(content_b) + CHECKSUM_SIZE
        if size > self._max_record_size:
            raise OversizeError("Encoded paste exceeds the maximum record size",
                                size=size, limit=self._max_record_size)

        body = struct.pack(HEADER_FORMAT, MAGIC_BYTES, paste.id, paste.timestamp, len(content_b)) + content_b
        return body + struct.pack(CHECKSUM_FORMAT, zlib.crc32(body) & 0xFFFFFFFF)

    def decode(self, data: bytes) -> Paste:
        data = bytes(data)
        if len(data) < HEADER_SIZE + CHECKSUM_SIZE:
            raise CorruptRecordError(f"Record too short: {len(data)} bytes")

        magic, paste_id, timestamp, content_len = struct.unpack(HEADER_FORMAT, data[:HEADER_SIZE])
        if magic != MAGIC_BYTES:
            raise CorruptRecordError(f"Invalid magic bytes: expected {MAGIC_BYTES}, got {magic}")

        expected = HEADER_SIZE + content_len + CHECKSUM_SIZE
        if len(data) != expected:
            raise CorruptRecordError(f"Record length mismatch: expected {expected} bytes, got {len(data)}",
                                     paste_id=paste_id)

        body = data[:HEADER_SIZE + content_len]
        (stored_checksum,) = struct.unpack(CHECKSUM_FORMAT, data[HEADER_SIZE + content_len:])
        computed = zlib.crc32(body) & 0xFFFFFFFF
        if stored_checksum != computed:
            raise CorruptRecordError(
                f"Checksum mismatch: stored {stored_checksum:08x}, computed {computed:08x}", paste_id=paste_id)

        try:
            content = body[HEADER_SIZE:].decode('utf-8')
        except UnicodeDecodeError as e:
            raise CorruptRecordError("Content is not valid UTF-8", paste_id=paste_id, cause=e)

        return Paste(id=paste_id, content=content, timestamp=timestamp)
