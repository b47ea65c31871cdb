import logging
import re
from enum import Enum
from typing import List

from app.core.errors import InvalidAction

logger = logging.getLogger(__name__)


class PermissionFlag(str, Enum):
    CAN_VIEW = "can_view"
    CAN_CREATE = "can_create"
    CAN_EDIT = "can_edit"
    CAN_DELETE = "can_delete"

    @classmethod
    def list_all(cls) -> List[str]:
        return [flag.value for flag in cls]


ACTION_ALIASES: dict[str, PermissionFlag] = {
    "view": PermissionFlag.CAN_VIEW,
    "read": PermissionFlag.CAN_VIEW,
    "create": PermissionFlag.CAN_CREATE,
    "add": PermissionFlag.CAN_CREATE,
    "edit": PermissionFlag.CAN_EDIT,
    "update": PermissionFlag.CAN_EDIT,
    "delete": PermissionFlag.CAN_DELETE,
    "remove": PermissionFlag.CAN_DELETE,
}

METHOD_ACTIONS: dict[str, str] = {
    "GET": "view",
    "HEAD": "view",
    "POST": "create",
    "PUT": "edit",
    "PATCH": "edit",
    "DELETE": "delete",
}


def normalize_action(action: str | None) -> PermissionFlag:
    """Map a verb such as ``read`` or ``Remove`` to its permission flag."""
    key = (action or "").strip().lower()
    flag = ACTION_ALIASES.get(key)
    if flag is None:
        raise InvalidAction(action or "")
    return flag


def action_for_method(method: str) -> str:
    return METHOD_ACTIONS.get((method or "").upper(), "view")


class Module(str, Enum):
    ORG = "org"
    CUSTOMERS = "customers"
    SITES = "sites"
    BUILDINGS = "buildings"
    FLOORS = "floors"
    ASSETS = "assets"
    TENANTS = "tenants"
    DOCUMENTS = "documents"
    VENDORS = "vendors"
    USERS = "users"
    ROLES = "roles"
    ANALYTICS = "analytics"
    AUDIT_LOGS = "audit_logs"

    @classmethod
    def list_all(cls) -> List[str]:
        return [module.value for module in cls]


RESOURCE_TYPES: tuple[str, ...] = (
    "org",
    "site",
    "building",
    "floor",
    "tenant",
    "document",
    "asset",
    "vendor",
    "customer",
    "user",
    "analytics",
)

RESOURCE_MODULES: dict[str, str] = {
    "org": Module.ORG.value,
    "site": Module.SITES.value,
    "building": Module.BUILDINGS.value,
    "floor": Module.FLOORS.value,
    "tenant": Module.TENANTS.value,
    "document": Module.DOCUMENTS.value,
    "asset": Module.ASSETS.value,
    "vendor": Module.VENDORS.value,
    "customer": Module.CUSTOMERS.value,
    "user": Module.USERS.value,
    "analytics": Module.ANALYTICS.value,
}

_VERSION_SEGMENT = re.compile(r"^v\d+$")

# First URL segment -> module guarding it.
PATH_MODULES: dict[str, str] = {
    "customers": Module.CUSTOMERS.value,
    "sites": Module.SITES.value,
    "buildings": Module.BUILDINGS.value,
    "floors": Module.FLOORS.value,
    "building-tenants": Module.TENANTS.value,
    "tenants": Module.TENANTS.value,
    "documents": Module.DOCUMENTS.value,
    "assets": Module.ASSETS.value,
    "vendors": Module.VENDORS.value,
    "users": Module.USERS.value,
    "roles": Module.USERS.value,
    "notifications": Module.USERS.value,
    "analytics": Module.ANALYTICS.value,
    "hierarchy": Module.CUSTOMERS.value,
}


def module_for_resource(resource_type: str) -> str:
    module_name = RESOURCE_MODULES.get(resource_type)
    if module_name is None:
        module_name = f"{resource_type}s"
        logger.warning(
            "No module mapping for resource type; using suffix convention",
            extra={"resource_type": resource_type, "module_name": module_name},
        )
    return module_name


def module_for_path(path: str) -> str | None:
    """Module guarding a request path; the ``/api/vN`` mount prefix is skipped."""
    segments = [segment for segment in (path or "").split("/") if segment]
    if segments and segments[0] == "api":
        segments = segments[1:]
    if segments and _VERSION_SEGMENT.match(segments[0]):
        segments = segments[1:]
    if not segments:
        return None
    return PATH_MODULES.get(segments[0])


# Lowest to highest.
ROLE_HIERARCHY: tuple[str, ...] = (
    "Tenants",
    "Contractor",
    "Building Manager",
    "Property Manager",
    "Admin",
)


def _flags(view: bool, create: bool, edit: bool, delete: bool) -> dict[str, bool]:
    return {
        PermissionFlag.CAN_VIEW.value: view,
        PermissionFlag.CAN_CREATE.value: create,
        PermissionFlag.CAN_EDIT.value: edit,
        PermissionFlag.CAN_DELETE.value: delete,
    }


_FULL = _flags(True, True, True, True)
_NONE = _flags(False, False, False, False)
_VIEW = _flags(True, False, False, False)

DEFAULT_ROLE_DEFINITIONS: dict[str, dict] = {
    "Admin": {
        "description": "Full control within the organization",
        "permissions": {module: _FULL for module in Module.list_all()},
    },
    "Property Manager": {
        "description": "Manages every property in the portfolio",
        "permissions": {
            "org": _NONE,
            **{
                module: _FULL
                for module in ("sites", "buildings", "floors", "tenants", "documents", "assets",
                               "vendors", "customers", "users", "roles", "analytics", "audit_logs")
            },
        },
    },
    "Building Manager": {
        "description": "Operates assigned buildings without site or customer access",
        "permissions": {
            "org": _NONE,
            "sites": _NONE,
            "buildings": _flags(True, True, True, False),
            "floors": _flags(True, True, True, False),
            "tenants": _flags(True, True, True, False),
            "documents": _FULL,
            "assets": _FULL,
            "vendors": _FULL,
            "customers": _NONE,
            "users": _FULL,
            "roles": _VIEW,
            "analytics": _flags(True, True, False, False),
            "audit_logs": _VIEW,
        },
    },
    "Contractor": {
        "description": "Read access to buildings and assets, may upload documents",
        "permissions": {
            "org": _NONE,
            "sites": _NONE,
            "buildings": _VIEW,
            "floors": _VIEW,
            "tenants": _NONE,
            "documents": _flags(True, True, False, False),
            "assets": _VIEW,
            "vendors": _NONE,
            "customers": _NONE,
            "users": _NONE,
            "roles": _NONE,
            "analytics": _NONE,
            "audit_logs": _VIEW,
        },
    },
    "Tenants": {
        "description": "Occupant access limited to floors",
        "permissions": {
            "org": _NONE,
            "sites": _NONE,
            "buildings": _NONE,
            "floors": _VIEW,
            "tenants": _NONE,
            "documents": _NONE,
            "assets": _NONE,
            "vendors": _NONE,
            "customers": _NONE,
            "users": _NONE,
            "roles": _NONE,
            "analytics": _NONE,
            "audit_logs": _NONE,
        },
    },
}


def role_permission_entries(definition: dict) -> list[dict]:
    """Expand a ``{module: flags}`` mapping into the stored list-of-entries shape."""
    return [{"module_name": module, **flags} for module, flags in definition["permissions"].items()]
