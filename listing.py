"""
Listing query builder

Turns loosely typed listing parameters (page, limit, free-text query, sort
field/direction, owner id) into an ordered aggregation plan:

    $match -> $lookup/$unwind -> $project -> $sort -> $skip -> $limit

Malformed optional input never fails a request; it falls back to defaults.
Only a malformed *required* identifier is rejected (see require_object_id).
"""

import re
from typing import Any, Dict, List, Optional, Sequence

from bson import ObjectId
from fastapi import HTTPException
from pydantic import BaseModel, ConfigDict, Field

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
DEFAULT_SORT_FIELD = "created_at"
DEFAULT_SORT_DIRECTION = "desc"

SORT_DIRECTIONS = {"asc": 1, "desc": -1}

# Public sort keys accepted from clients -> stored field names
VIDEO_SORTABLE = {
    "created_at": "created_at",
    "createdAt": "created_at",
    "title": "title",
}

USER_SUMMARY_FIELDS = ["username", "full_name", "avatar"]

# Keeps (page - 1) * limit inside a BSON int64
MAX_PAGING_VALUE = 2**31 - 1


def coerce_positive_int(value: Any, default: int, maximum: int = MAX_PAGING_VALUE) -> int:
    """Return value as a positive int no larger than maximum, or default when it is not one."""
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    return number if 0 < number <= maximum else default


def optional_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if value is None or not ObjectId.is_valid(value):
        return None
    return ObjectId(value)


def require_object_id(value: Any, label: str = "id") -> ObjectId:
    """Parse a required path identifier, rejecting it with a 400 when malformed."""
    oid = optional_object_id(value)
    if oid is None:
        raise HTTPException(status_code=400, detail=f"Invalid {label}")
    return oid


class ListingParams(BaseModel):
    """Raw listing parameters as they arrive on the query string."""

    page: Optional[str] = None
    limit: Optional[str] = None
    query: Optional[str] = None
    sort_by: Optional[str] = None
    sort_type: Optional[str] = None
    user_id: Optional[str] = None


class PageSpec(BaseModel):
    page: int = Field(DEFAULT_PAGE, ge=1)
    limit: int = Field(DEFAULT_LIMIT, ge=1)

    @classmethod
    def from_params(cls, page: Any = None, limit: Any = None) -> "PageSpec":
        return cls(
            page=coerce_positive_int(page, DEFAULT_PAGE),
            limit=coerce_positive_int(limit, DEFAULT_LIMIT),
        )

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


class SortSpec(BaseModel):
    field: str = DEFAULT_SORT_FIELD
    direction: str = DEFAULT_SORT_DIRECTION
    tiebreaker: str = "_id"

    @classmethod
    def from_params(
        cls,
        sort_by: Optional[str] = None,
        sort_type: Optional[str] = None,
        sortable: Optional[Dict[str, str]] = None,
    ) -> "SortSpec":
        """Use the requested sort only when both parts are present and recognized."""
        if not sortable or not sort_by or not sort_type:
            return cls()
        field = sortable.get(sort_by.strip())
        direction = sort_type.strip().lower()
        if field is None or direction not in SORT_DIRECTIONS:
            return cls()
        return cls(field=field, direction=direction)

    def to_stage(self) -> Dict[str, Any]:
        order = SORT_DIRECTIONS[self.direction]
        # the tiebreaker keeps equal sort keys paging deterministically
        return {"$sort": {self.field: order, self.tiebreaker: order}}


class FilterSpec(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    owner_id: Optional[ObjectId] = None
    query: Optional[str] = None

    @classmethod
    def from_params(cls, user_id: Any = None, query: Optional[str] = None) -> "FilterSpec":
        text = query.strip() if isinstance(query, str) else None
        return cls(owner_id=optional_object_id(user_id), query=text or None)

    def clauses(self, owner_field: str, search_fields: Sequence[str]) -> List[Dict[str, Any]]:
        result: List[Dict[str, Any]] = []
        if self.owner_id is not None:
            result.append({owner_field: self.owner_id})
        if self.query and search_fields:
            regex = {"$regex": re.escape(self.query), "$options": "i"}
            result.append({"$or": [{field: regex} for field in search_fields]})
        return result


class ToOneJoin(BaseModel):
    """A reference field resolved to one embedded document of another collection."""

    collection: str
    local_field: str
    fields: List[str] = Field(default_factory=list)
    # Drop records whose reference no longer resolves
    required: bool = False

    def to_stages(self) -> List[Dict[str, Any]]:
        return [
            {
                "$lookup": {
                    "from": self.collection,
                    "localField": self.local_field,
                    "foreignField": "_id",
                    "as": self.local_field,
                }
            },
            {
                "$unwind": {
                    "path": f"${self.local_field}",
                    "preserveNullAndEmptyArrays": not self.required,
                }
            },
        ]

    def projected_fields(self) -> List[str]:
        return [f"{self.local_field}._id"] + [f"{self.local_field}.{f}" for f in self.fields]


class ListingPlan(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    match: Dict[str, Any] = Field(default_factory=dict)
    join: Optional[ToOneJoin] = None
    projection: Optional[Dict[str, Any]] = None
    sort: Optional[SortSpec] = None
    page: Optional[PageSpec] = None

    def to_pipeline(self) -> List[Dict[str, Any]]:
        pipeline: List[Dict[str, Any]] = [{"$match": self.match}]
        if self.join is not None:
            pipeline.extend(self.join.to_stages())
        if self.projection:
            pipeline.append({"$project": self.projection})
        if self.sort is not None:
            pipeline.append(self.sort.to_stage())
        if self.page is not None:
            pipeline.append({"$skip": self.page.skip})
            pipeline.append({"$limit": self.page.limit})
        return pipeline


def combine_clauses(clauses: List[Dict[str, Any]]) -> Dict[str, Any]:
    if not clauses:
        return {}
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def build_listing_plan(
    params: ListingParams,
    scope: Optional[Dict[str, Any]] = None,
    *,
    owner_field: str = "owner",
    search_fields: Sequence[str] = ("title", "description"),
    join: Optional[ToOneJoin] = None,
    fields: Optional[Sequence[str]] = None,
    sortable: Optional[Dict[str, str]] = None,
) -> ListingPlan:
    """
    Build the aggregation plan for one listing request.

    - scope: fixed constraint from the calling context, always AND-ed
    - owner_field: field matched against params.user_id when it is a valid id
    - search_fields: fields OR-ed together for the free-text query
    - join: to-one reference embedded on every record
    - fields: record fields kept by the projection (None keeps everything)
    - sortable: accepted sort keys; None pins the default sort
    """
    filters = FilterSpec.from_params(params.user_id, params.query)
    clauses = filters.clauses(owner_field, search_fields)
    if scope:
        clauses.insert(0, scope)

    sort = SortSpec.from_params(params.sort_by, params.sort_type, sortable)

    projection = None
    if fields is not None:
        projection = {field: 1 for field in fields}
        projection[sort.field] = 1
        if join is not None:
            projection.pop(join.local_field, None)
            projection.update({field: 1 for field in join.projected_fields()})

    return ListingPlan(
        match=combine_clauses(clauses),
        join=join,
        projection=projection,
        sort=sort,
        page=PageSpec.from_params(params.page, params.limit),
    )


def run_listing(collection, plan: ListingPlan) -> List[Dict[str, Any]]:
    return list(collection.aggregate(plan.to_pipeline()))
