"""Built-in list resources of the admin dashboard."""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from adminsync.cache.keys import FILTER_FIELDS, FilterTuple
from adminsync.config.loader import Settings
from adminsync.resources import client_filters
from adminsync.resources.envelope import ItemFilter

DEFAULT_PARAM_NAMES: Dict[str, str] = {
    "status": "status",
    "type": "type",
    "tab": "tab",
    "search": "search",
    "start_date": "startDate",
    "end_date": "endDate",
}


@dataclass(frozen=True)
class ResourceSpec:
    """
    How to read one REST list resource.

    Attributes:
        name: Cache namespace and catalog id
        path: Collection path; single records live at path/{id}
        item_key: Envelope key holding the items when data is not a bare list
        filters: Recognized filter fields (subset of FILTER_FIELDS)
        param_names: Query parameter name per filter field
        send_page_window: Send page/limit to the server
        client_filter: Local predicate for backends that ignore filter params
        detail_key: Envelope key holding a single record, if not data
        page_size: Default page size for controllers on this resource
    """

    name: str
    path: str
    item_key: Optional[str] = None
    filters: tuple = ()
    param_names: Dict[str, str] = field(default_factory=dict)
    send_page_window: bool = False
    client_filter: Optional[ItemFilter] = None
    detail_key: Optional[str] = None
    page_size: Optional[int] = None

    def __post_init__(self) -> None:
        unknown = set(self.filters) - set(FILTER_FIELDS)
        if unknown:
            raise ValueError(f"Resource '{self.name}' declares unknown filters: {sorted(unknown)}")

    def query_params(self, filters: FilterTuple, page: int, page_size: int) -> Dict[str, Any]:
        """Build query parameters for a list request."""
        params: Dict[str, Any] = {}
        if self.send_page_window:
            params["page"] = page
            params["limit"] = page_size
        for name, value in filters.active().items():
            if name not in self.filters:
                continue
            param = self.param_names.get(name) or DEFAULT_PARAM_NAMES[name]
            params[param] = value
        return params

    def detail_path(self, entity_id: str) -> str:
        return f"{self.path.rstrip('/')}/{entity_id}"


BOOKINGS = ResourceSpec(
    name="bookings",
    path="/api/admin/bookings",
    item_key="bookings",
    filters=("status", "type", "tab", "search", "start_date", "end_date"),
    param_names={"type": "sessionType"},
    client_filter=client_filters.booking_matches,
)

TRANSACTIONS = ResourceSpec(
    name="transactions",
    path="/api/admin/transactions",
    item_key="transactions",
    filters=("status", "type", "search", "start_date", "end_date"),
    client_filter=client_filters.transaction_matches,
)

USERS = ResourceSpec(
    name="users",
    path="/api/admin/users",
    item_key="users",
    filters=("type", "status", "search"),
    param_names={"type": "role"},
    client_filter=client_filters.user_matches,
    detail_key="user",
)

ARTICLES = ResourceSpec(
    name="articles",
    path="/api/admin/articles",
    item_key="articles",
    filters=("type", "search"),
    param_names={"type": "category"},
    client_filter=client_filters.article_matches,
    detail_key="article",
)

GROUPS = ResourceSpec(
    name="groups",
    path="/api/DAnonymous",
    item_key="groups",
    filters=("search",),
    client_filter=client_filters.status_and_search("name", "description"),
    detail_key="group",
)

DISPUTES = ResourceSpec(
    name="disputes",
    path="/api/admin/disputes",
    item_key="disputes",
    filters=("status", "search"),
    client_filter=client_filters.status_and_search("reason", "description"),
    detail_key="dispute",
)

FLAGS = ResourceSpec(
    name="flags",
    path="/api/admin/flags",
    item_key="flags",
    filters=("status", "search"),
    client_filter=client_filters.status_and_search("note", "adminNote"),
)

NOTIFICATIONS = ResourceSpec(
    name="notifications",
    path="/api/admin/notifications",
    item_key="notifications",
    filters=("type",),
    client_filter=lambda item, f: not f.type or item.get("type") == f.type,
)

MODERATION_REPORTS = ResourceSpec(
    name="moderation_reports",
    path="/api/admin/moderation/reports/pending",
    item_key="data",
    filters=("status",),
    client_filter=client_filters.status_and_search(),
)

CATALOG: Dict[str, ResourceSpec] = {
    spec.name: spec
    for spec in (
        BOOKINGS,
        TRANSACTIONS,
        USERS,
        ARTICLES,
        GROUPS,
        DISPUTES,
        FLAGS,
        NOTIFICATIONS,
        MODERATION_REPORTS,
    )
}


def get_resource(name: str, settings: Optional[Settings] = None) -> ResourceSpec:
    """
    Look up a catalog resource, applying config overrides.

    Raises:
        ValueError: If the resource name is unknown
    """
    spec = CATALOG.get(name)
    if spec is None:
        raise ValueError(f"Unknown resource '{name}'. Known: {', '.join(sorted(CATALOG))}")
    if settings is None:
        return spec
    override = settings.resources.get(name)
    if override is None:
        return spec
    changes: Dict[str, Any] = {}
    if override.path:
        changes["path"] = override.path
    if override.page_size:
        changes["page_size"] = override.page_size
    return replace(spec, **changes) if changes else spec


def list_resources() -> List[ResourceSpec]:
    return [CATALOG[name] for name in sorted(CATALOG)]
