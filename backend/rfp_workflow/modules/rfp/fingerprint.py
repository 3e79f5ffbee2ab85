from __future__ import annotations

import struct

_MASK_32 = 0xFFFFFFFF


def _utf16_code_units(text: str) -> tuple[int, ...]:
    raw = text.encode("utf-16-le", "surrogatepass")
    return struct.unpack(f"<{len(raw) // 2}H", raw)


def hash_string(text: str | None) -> str:
    """
    Cheap content fingerprint for change detection (not for security).

    32-bit `h * 31 + c` rolling hash over UTF-16 code units, rendered as
    signed hex (`""` -> `"0"`). Outputs are persisted in
    `generatedUsing.scopeSummaryHash`, so the algorithm must never change.
    """
    h = 0
    for unit in _utf16_code_units(str(text or "")):
        h = (((h << 5) - h) + unit) & _MASK_32
    if h & 0x80000000:
        return "-" + format((1 << 32) - h, "x")
    return format(h, "x")
