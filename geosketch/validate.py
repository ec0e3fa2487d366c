import math
from typing import Any, List, Mapping, Sequence

from .model import MIN_POLYGON_VERTICES, ElementType, LineMode


class ValidationError(Exception):
    pass


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and not math.isnan(value)


def _ensure_str(record: Mapping[str, Any], key: str, kind: str) -> None:
    if not isinstance(record.get(key), str):
        raise ValidationError(f'{kind} record needs a string "{key}"')


def _ensure_optional_str(record: Mapping[str, Any], key: str, label: str) -> None:
    value = record.get(key)
    if value is not None and not isinstance(value, str):
        raise ValidationError(f'{label} "{key}" must be a string id')


def _ensure_optional_number(record: Mapping[str, Any], key: str, label: str) -> None:
    value = record.get(key)
    if value is not None and not _is_number(value):
        raise ValidationError(f'{label} "{key}" must be a number')


def _ensure_lat_lon(value: Any, label: str) -> None:
    if not isinstance(value, Mapping):
        raise ValidationError(f'{label} must be an object with "lat" and "lon"')
    if not _is_number(value.get('lat')) or not _is_number(value.get('lon')):
        raise ValidationError(f'{label} needs numeric, non-NaN "lat" and "lon"')


def _record_label(record: Any, kind: str) -> str:
    if isinstance(record, Mapping) and isinstance(record.get('id'), str):
        return f"{kind} '{record['id']}'"
    return kind


def validate_circle_record(record: Any) -> None:
    if not isinstance(record, Mapping):
        raise ValidationError('circle record must be an object')
    _ensure_str(record, 'id', 'circle')
    _ensure_str(record, 'name', 'circle')
    label = _record_label(record, 'circle')
    _ensure_lat_lon(record.get('center'), f'{label} center')
    radius = record.get('radius')
    if not _is_number(radius) or radius <= 0:
        raise ValidationError(f'{label} radius must be a positive number')


def validate_point_record(record: Any) -> None:
    if not isinstance(record, Mapping):
        raise ValidationError('point record must be an object')
    _ensure_str(record, 'id', 'point')
    _ensure_str(record, 'name', 'point')
    label = _record_label(record, 'point')
    _ensure_lat_lon(record.get('coordinates'), f'{label} coordinates')
    _ensure_optional_str(record, 'lineId', label)


def validate_line_record(record: Any) -> None:
    if not isinstance(record, Mapping):
        raise ValidationError('line segment record must be an object')
    _ensure_str(record, 'id', 'line segment')
    _ensure_str(record, 'name', 'line segment')
    label = _record_label(record, 'line segment')
    _ensure_lat_lon(record.get('center'), f'{label} center')
    try:
        mode = LineMode(record.get('mode'))
    except ValueError as exc:
        raise ValidationError(f'{label} has unknown mode {record.get("mode")!r}') from exc
    for key in ('startPointId', 'endPointId'):
        _ensure_optional_str(record, key, label)

    if mode == LineMode.PARALLEL:
        latitude = record.get('latitude', record.get('longitude'))
        if not _is_number(latitude):
            raise ValidationError(f'{label} parallel needs a numeric latitude')
        return

    for key in ('distance', 'azimuth', 'intersectionDistance'):
        _ensure_optional_number(record, key, label)
    has_endpoint = record.get('endpoint') is not None
    if has_endpoint:
        _ensure_lat_lon(record['endpoint'], f'{label} endpoint')
    if mode == LineMode.COORDINATE and not has_endpoint:
        raise ValidationError(f'{label} coordinate line needs an endpoint')
    if mode == LineMode.AZIMUTH and not has_endpoint:
        if not _is_number(record.get('distance')) or not _is_number(record.get('azimuth')):
            raise ValidationError(f'{label} azimuth line needs an endpoint or distance and azimuth')
    if mode == LineMode.INTERSECTION:
        if record.get('intersectionPoint') is not None:
            _ensure_lat_lon(record['intersectionPoint'], f'{label} intersection point')
        elif not has_endpoint:
            raise ValidationError(f'{label} intersection line needs an intersection point')

    pids = record.get('pointsOnLine')
    if pids is not None and (
        not isinstance(pids, Sequence) or isinstance(pids, str) or not all(isinstance(p, str) for p in pids)
    ):
        raise ValidationError(f'{label} pointsOnLine must be a list of ids')


def validate_polygon_record(record: Any) -> None:
    if not isinstance(record, Mapping):
        raise ValidationError('polygon record must be an object')
    _ensure_str(record, 'id', 'polygon')
    _ensure_str(record, 'name', 'polygon')
    ids = record.get('pointIds')
    label = _record_label(record, 'polygon')
    if not isinstance(ids, Sequence) or isinstance(ids, str):
        raise ValidationError(f'{label} needs a pointIds list')
    if not all(isinstance(pid, str) for pid in ids):
        raise ValidationError(f'{label} pointIds must be strings')
    ensure_polygon_vertices(list(ids), label)


def validate_note_record(record: Any) -> None:
    if not isinstance(record, Mapping):
        raise ValidationError('note record must be an object')
    _ensure_str(record, 'id', 'note')
    _ensure_str(record, 'title', 'note')
    _ensure_str(record, 'content', 'note')
    _ensure_optional_str(record, 'linkedElementId', _record_label(record, 'note'))
    linked_type = record.get('linkedElementType')
    if linked_type is not None:
        try:
            ElementType(linked_type)
        except ValueError as exc:
            raise ValidationError(
                f"{_record_label(record, 'note')} links to unknown element type {linked_type!r}"
            ) from exc


def ensure_polygon_vertices(ids: List[str], label: str = 'polygon') -> None:
    distinct = len(dict.fromkeys(ids))
    if distinct < MIN_POLYGON_VERTICES:
        raise ValidationError(
            f'{label} needs at least {MIN_POLYGON_VERTICES} distinct vertices, got {distinct}'
        )


__all__ = [
    'ValidationError',
    'validate_circle_record',
    'validate_point_record',
    'validate_line_record',
    'validate_polygon_record',
    'validate_note_record',
    'ensure_polygon_vertices',
]
