"""Comparación de etiquetas de piso.

Los datos maestros escriben el piso de varias formas ("1階", "1F", "1"); los
filtros deben tratarlas como el mismo piso.
"""

from __future__ import annotations

import re

ALL_FLOORS = frozenset({"全階", "all", ""})

_NON_DIGITS = re.compile(r"[^\d]")


def match_floor(resident_floor: str | None, selected_floor: str | None) -> bool:
    if selected_floor is None or selected_floor.strip() in ALL_FLOORS:
        return True
    if not resident_floor:
        return False

    resident = str(resident_floor)
    selected = str(selected_floor)
    resident_num = _NON_DIGITS.sub("", resident)
    selected_num = _NON_DIGITS.sub("", selected)

    return (
        resident == selected
        or resident_num == selected
        or (bool(resident_num) and resident_num == selected_num)
        or resident == selected + "F"
        or resident == selected + "階"
    )
