from typing import Any, Iterable, List, Optional

from beanie import PydanticObjectId
from bson.errors import InvalidId


def to_object_id(value: Any) -> Optional[PydanticObjectId]:
    """문자열 ID를 ObjectId로 변환 (형식이 잘못되면 None)"""
    if value is None:
        return None
    try:
        return PydanticObjectId(value)
    except (InvalidId, TypeError, ValueError):
        return None


def to_object_ids(values: Iterable[Any]) -> List[PydanticObjectId]:
    """변환 가능한 ID만 순서대로 반환"""
    result = []
    for value in values:
        object_id = to_object_id(value)
        if object_id is not None:
            result.append(object_id)
    return result
