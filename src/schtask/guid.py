from __future__ import annotations

import re
import struct
from dataclasses import dataclass

from schtask.errors import GuidFormatError

_HEX_RE = re.compile(r"^[0-9A-Fa-f]+$")


@dataclass(frozen=True)
class Guid:
    """A 16-byte COM identifier in its native Data1..Data4 layout."""

    data1: int
    data2: int
    data3: int
    data4: tuple[int, int, int, int, int, int, int, int]

    def __str__(self) -> str:
        tail = "".join(f"{b:02X}" for b in self.data4[2:])
        return (
            f"{{{self.data1:08X}-{self.data2:04X}-{self.data3:04X}-"
            f"{self.data4[0]:02X}{self.data4[1]:02X}-{tail}}}"
        )

    def to_bytes(self) -> bytes:
        # Same layout as the in-memory GUID struct (little-endian fields).
        return struct.pack("<IHH8B", self.data1, self.data2, self.data3, *self.data4)

    @classmethod
    def from_bytes(cls, raw: bytes) -> Guid:
        if len(raw) != 16:
            raise GuidFormatError("Invalid GUID format")
        d1, d2, d3, *d4 = struct.unpack("<IHH8B", raw)
        return cls(d1, d2, d3, tuple(d4))  # type: ignore[arg-type]


def _parse_field(text: str, bits: int, name: str) -> int:
    if not text or not _HEX_RE.match(text):
        raise GuidFormatError(f"Failed to parse {name}")
    value = int(text, 16)
    if value >= 1 << bits:
        raise GuidFormatError(f"Failed to parse {name}")
    return value


def _lenient_byte(pair: str) -> int:
    # Malformed trailing pairs become 0 instead of failing the whole parse.
    if _HEX_RE.match(pair):
        return int(pair, 16)
    return 0


def parse_guid(text: str) -> Guid:
    """Parse ``{XXXXXXXX-XXXX-XXXX-XXXX-XXXXXXXXXXXX}`` (braces optional)."""

    s = str(text).strip("{}")
    parts = s.split("-")
    if len(parts) != 5:
        raise GuidFormatError("Invalid GUID format")

    data1 = _parse_field(parts[0], 32, "Data1")
    data2 = _parse_field(parts[1], 16, "Data2")
    data3 = _parse_field(parts[2], 16, "Data3")

    head = parts[3]
    if len(head) != 4:
        raise GuidFormatError("Failed to parse Data4")
    d4_0 = _parse_field(head[0:2], 8, "Data4[0]")
    d4_1 = _parse_field(head[2:4], 8, "Data4[1]")

    last = parts[4]
    if len(last) != 12:
        raise GuidFormatError("Invalid Data4 format")
    rest = [_lenient_byte(last[i : i + 2]) for i in range(0, 12, 2)]

    return Guid(data1, data2, data3, (d4_0, d4_1, *rest))  # type: ignore[arg-type]
