"""Reconciliación de las actualizaciones optimistas.

El rollback es una reversión a tres vías entre:
- `snapshot`: la entrada antes de la edición especulativa de esta mutación;
- `applied`: la entrada justo después de esa edición;
- `current`: la entrada ahora (quizá editada otra vez por mutaciones posteriores).

Si nadie más tocó la entrada, vuelve el snapshot tal cual. Si no, solo se
revierte lo que esta mutación cambió y todavía conserva su valor; las
ediciones posteriores a otros campos sobreviven.
"""

from __future__ import annotations

import copy
from typing import Any, Callable, Iterable

ID_FIELD = "id"

_MISSING = object()


def restore_snapshot(current: Any, snapshot: Any, applied: Any) -> Any:
    """Rollback de la entrada completa (los reordenamientos en lote son todo o nada)."""

    return copy.deepcopy(snapshot)


def revert(current: Any, snapshot: Any, applied: Any) -> Any:
    if current == applied:
        return copy.deepcopy(snapshot)
    if _is_record_list(current) and _is_record_list(snapshot) and _is_record_list(applied):
        return _revert_records(current, snapshot, applied)
    if isinstance(current, dict) and isinstance(snapshot, dict) and isinstance(applied, dict):
        return _revert_fields(current, snapshot, applied)
    return copy.deepcopy(snapshot)


def _is_record_list(value: Any) -> bool:
    return isinstance(value, list) and all(
        isinstance(item, dict) and ID_FIELD in item for item in value
    )


def _index(records: Iterable[dict[str, Any]]) -> dict[Any, dict[str, Any]]:
    return {record[ID_FIELD]: record for record in records}


def _revert_fields(
    current: dict[str, Any],
    snapshot: dict[str, Any],
    applied: dict[str, Any],
) -> dict[str, Any]:
    restored = dict(current)
    for name in set(snapshot) | set(applied):
        before = snapshot.get(name, _MISSING)
        after = applied.get(name, _MISSING)
        if before == after:
            continue
        if current.get(name, _MISSING) != after:
            # Una edición posterior es dueña del campo.
            continue
        if before is _MISSING:
            restored.pop(name, None)
        else:
            restored[name] = copy.deepcopy(before)
    return restored


def _revert_records(
    current: list[dict[str, Any]],
    snapshot: list[dict[str, Any]],
    applied: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    before = _index(snapshot)
    after = _index(applied)

    result: list[dict[str, Any]] = []
    for record in current:
        record_id = record[ID_FIELD]
        if record_id in after and record_id not in before:
            # Creado especulativamente por esta mutación.
            continue
        if record_id in before and record_id in after and before[record_id] != after[record_id]:
            result.append(_revert_fields(record, before[record_id], after[record_id]))
        else:
            result.append(record)

    # Los registros que esta mutación quitó vuelven a su posición.
    present = {record[ID_FIELD] for record in result}
    for position, record in enumerate(snapshot):
        record_id = record[ID_FIELD]
        if record_id not in after and record_id not in present:
            result.insert(min(position, len(result)), copy.deepcopy(record))
            present.add(record_id)

    if [r[ID_FIELD] for r in current] == [r[ID_FIELD] for r in applied]:
        order = {record[ID_FIELD]: i for i, record in enumerate(snapshot)}
        if set(order) == present:
            result.sort(key=lambda r: order[r[ID_FIELD]])
    return result


def replace_record(
    records: list[dict[str, Any]] | None,
    payload: dict[str, Any],
    *,
    match: Callable[[dict[str, Any]], bool],
    fields: Iterable[str] | None = None,
) -> list[dict[str, Any]]:
    """Mezcla un payload del servidor en el primer registro que coincide y quita duplicados.

    Coincide por `match(record)` o por el id del servidor; el registro mezclado
    queda con el id del servidor. Si nada coincide, se agrega al final. Con
    `fields`, del payload solo se toman el id, esos campos y las claves que el
    registro no tiene.
    """

    server_id = payload.get(ID_FIELD)
    owned = None if fields is None else {ID_FIELD, *fields}
    out: list[dict[str, Any]] = []
    merged = False
    for record in records or []:
        hit = match(record) or (server_id is not None and record.get(ID_FIELD) == server_id)
        if not hit:
            out.append(record)
            continue
        if merged:
            continue
        if owned is None:
            out.append({**record, **payload})
        else:
            out.append({**record, **{k: v for k, v in payload.items() if k in owned or k not in record}})
        merged = True
    if not merged:
        out.append(dict(payload))
    return out
