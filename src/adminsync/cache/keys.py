"""Cache key types: the filter tuple and the full query key."""

from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator

FILTER_FIELDS: Tuple[str, ...] = ("status", "type", "tab", "search", "start_date", "end_date")


class FilterTuple(BaseModel):
    """
    Recognized list filters.

    Empty strings normalize to None so that an explicitly cleared filter and an
    absent one produce equal (and equally hashed) cache keys.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    status: Optional[str] = None
    type: Optional[str] = None
    tab: Optional[str] = None
    search: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _blank_is_absent(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, str):
            return value if value.strip() else None
        return str(value)

    def merge(self, partial: Dict[str, Any]) -> "FilterTuple":
        """Return a copy with the given keys replaced (validated)."""
        unknown = set(partial) - set(FILTER_FIELDS)
        if unknown:
            raise ValueError(f"Unknown filter keys: {sorted(unknown)}")
        return FilterTuple(**{**self.model_dump(), **partial})

    def active(self) -> Dict[str, str]:
        """Only the filters that are set."""
        return {k: v for k, v in self.model_dump().items() if v is not None}

    def is_empty(self) -> bool:
        return not self.active()


class QueryKey(BaseModel):
    """
    Identity of one cached query.

    List queries carry filters and a page window; single-entity reads carry an
    entity_id and leave the window at its defaults.
    """

    model_config = ConfigDict(frozen=True)

    resource: str
    filters: FilterTuple = FilterTuple()
    page: int = 1
    page_size: int = 10
    entity_id: Optional[str] = None

    @property
    def is_detail(self) -> bool:
        return self.entity_id is not None

    def describe(self) -> str:
        if self.entity_id is not None:
            return f"{self.resource}/{self.entity_id}"
        active = ",".join(f"{k}={v}" for k, v in self.filters.active().items())
        return f"{self.resource}[{active}] p{self.page}x{self.page_size}"


def list_key(resource: str, filters: Optional[FilterTuple] = None, page: int = 1, page_size: int = 10) -> QueryKey:
    return QueryKey(resource=resource, filters=filters or FilterTuple(), page=page, page_size=page_size)


def detail_key(resource: str, entity_id: str) -> QueryKey:
    return QueryKey(resource=resource, entity_id=str(entity_id))


def match_resource(resource: str):
    """Predicate: every key (list or detail) for a resource."""
    return lambda key: key.resource == resource


def match_lists(resource: str):
    """Predicate: list keys for a resource, any filters or page."""
    return lambda key: key.resource == resource and key.entity_id is None


def match_entity(resource: str, entity_id: str):
    """Predicate: the detail key for one entity."""
    entity_id = str(entity_id)
    return lambda key: key.resource == resource and key.entity_id == entity_id
