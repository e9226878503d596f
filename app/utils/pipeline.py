"""
Declarative aggregation pipeline stages shared by every resource.

Each stage renders to one or more raw MongoDB stages. A resource query is an
ordered list of stages composed with ``build_pipeline``:

    build_pipeline(
        Filter({"owner": user_id}),
        Join("users", "owner", fields=["username", "avatar"]),
        Flatten("owner"),
        Derive(likes_count=count_of("likes")),
        Reshape(["title", "owner.username", "likes_count"]),
        Sort.from_query(sort_by, sort_type, allowed=("created_at", "views")),
    )
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union
from fastapi import HTTPException, status

# Never allowed in a response projection
SENSITIVE_FIELDS = frozenset({"password", "refresh_token"})


@dataclass
class Filter:
    """Restrict to documents matching an exact-match or membership predicate"""
    predicate: Dict[str, Any]

    def render(self) -> List[dict]:
        return [{"$match": self.predicate}]


@dataclass
class Join:
    """
    Attach documents from another collection by foreign key.

    ``fields`` narrows every joined document to that field set (plus _id).
    ``as_field`` may be a dotted path into an already flattened embedded
    document; the lookup then lands in a temporary top-level field first.
    """
    collection: str
    local_field: str
    as_field: Optional[str] = None
    foreign_field: str = "_id"
    fields: Optional[Sequence[str]] = None

    def render(self) -> List[dict]:
        target = self.as_field or self.local_field
        staged = "_joined_" + target.replace(".", "_") if "." in target else target

        stages = [{
            "$lookup": {
                "from": self.collection,
                "localField": self.local_field,
                "foreignField": self.foreign_field,
                "as": staged,
            }
        }]

        if self.fields is not None:
            projection = {"_id": "$$joined._id"}
            projection.update({name: f"$$joined.{name}" for name in self.fields})
            stages.append({
                "$addFields": {
                    staged: {"$map": {"input": f"${staged}", "as": "joined", "in": projection}}
                }
            })

        if staged != target:
            stages.append({"$addFields": {target: f"${staged}"}})
            stages.append({"$project": {staged: 0}})

        return stages


@dataclass
class Flatten:
    """
    Turn a one-to-one join result into an embedded object.

    A required join with no match drops the row, so a single-document read of
    an orphaned row comes back empty. Optional joins keep the row and leave
    the field out.
    """
    field: str
    required: bool = True

    def render(self) -> List[dict]:
        return [{
            "$unwind": {
                "path": f"${self.field}",
                "preserveNullAndEmptyArrays": not self.required,
            }
        }]


class Derive:
    """Compute fields from the already joined shape"""

    def __init__(self, **fields: Any):
        self.fields = fields

    def render(self) -> List[dict]:
        return [{"$addFields": dict(self.fields)}]


@dataclass
class Reshape:
    """Whitelist projection of the final field set"""
    fields: Sequence[str]
    include_id: bool = True

    def __post_init__(self):
        for name in self.fields:
            if set(name.split(".")) & SENSITIVE_FIELDS:
                raise ValueError(f"Refusing to project sensitive field '{name}'")

    def render(self) -> List[dict]:
        projection = {name: 1 for name in self.fields}
        if not self.include_id:
            projection["_id"] = 0
        return [{"$project": projection}]


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass
class Sort:
    """Single-key sort with _id as tie-breaker so pages are stable"""
    field: str = "created_at"
    direction: SortDirection = SortDirection.DESC

    @classmethod
    def from_query(
        cls,
        sort_by: Optional[str],
        sort_type: Optional[str],
        allowed: Sequence[str] = ("created_at",),
    ) -> "Sort":
        sort_by = sort_by or "created_at"
        if sort_by not in allowed:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Cannot sort by '{sort_by}'. Allowed: {', '.join(allowed)}"
            )
        try:
            direction = SortDirection((sort_type or SortDirection.DESC.value).lower())
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="sort_type must be 'asc' or 'desc'"
            )
        return cls(field=sort_by, direction=direction)

    def render(self) -> List[dict]:
        order = 1 if self.direction == SortDirection.ASC else -1
        keys = {self.field: order}
        if self.field != "_id":
            keys["_id"] = order
        return [{"$sort": keys}]


Stage = Union[Filter, Join, Flatten, Derive, Reshape, Sort]


def build_pipeline(*stages: Optional[Stage]) -> List[dict]:
    """Render stages in order, skipping None so optional stages read inline"""
    pipeline: List[dict] = []
    for stage in stages:
        if stage is not None:
            pipeline.extend(stage.render())
    return pipeline


# Expression helpers for Derive

def count_of(path: str) -> dict:
    return {"$size": f"${path}"}


def contains(value: Any, path: str) -> dict:
    """True when value is one of the values found at path (e.g. likes.liked_by)"""
    return {"$cond": {"if": {"$in": [value, f"${path}"]}, "then": True, "else": False}}


def sum_of(path: str) -> dict:
    return {"$sum": f"${path}"}


def keep_if(path: str, condition: dict, as_name: str = "item") -> dict:
    """Elements of the array at path for which condition holds; refer to them as $$<as_name>"""
    return {"$filter": {"input": f"${path}", "as": as_name, "cond": condition}}
