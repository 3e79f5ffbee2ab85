from __future__ import annotations

from typing import Any


def build_set_update(updates: dict[str, Any], *, now: str) -> tuple[str, dict[str, str], dict[str, Any]]:
    """
    SET expression for a partial update; `updatedAt` is always refreshed.

    Attribute names go through placeholders so reserved words (status,
    title, ...) are safe.
    """
    expr_parts: list[str] = []
    expr_names: dict[str, str] = {"#updatedAt": "updatedAt"}
    expr_values: dict[str, Any] = {":u": now}

    for i, (k, v) in enumerate(updates.items(), start=1):
        nk = f"#k{i}"
        vk = f":v{i}"
        expr_names[nk] = k
        expr_values[vk] = v
        expr_parts.append(f"{nk} = {vk}")

    expr_parts.append("#updatedAt = :u")
    return "SET " + ", ".join(expr_parts), expr_names, expr_values
