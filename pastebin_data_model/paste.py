"""Data classes representing the paste entity."""

from dataclasses import dataclass, asdict, replace
from typing import Any, Dict

# Type alias for paste identifiers (unsigned 64-bit)
PasteId = int

U64_MAX: int = 2 ** 64 - 1


@dataclass
class Paste:
    """A stored text record.

    Attributes:
        id: Unique identifier, assigned once at creation and never changed.
        content: UTF-8 text of the paste. Never empty for a stored paste.
        timestamp: Nanosecond clock reading of the last create or update.
    """
    id: PasteId
    content: str
    timestamp: int

    def with_content(self, content: str, timestamp: int) -> 'Paste':
        """Return a copy carrying new content and timestamp; the id is kept."""
        return replace(self, content=content, timestamp=timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def is_blank(content: Any) -> bool:
    """True when content is not a string or contains only whitespace."""
    return not isinstance(content, str) or not content.strip()
