"""
Notification categories and the per-category presentation table.
Every category maps to exactly one record stream, title, toast severity,
admin route and icon.
"""
from enum import Enum
from typing import Dict, NamedTuple, Union


class Category(str, Enum):
    DONATION = "donation"
    MEMBER = "member"
    PRAYER = "prayer"
    CONTACT = "contact"
    VOLUNTEER = "volunteer"
    EVENT = "event"
    SERMON = "sermon"


class Severity(str, Enum):
    """Visual severity of the pop-up notice"""
    SUCCESS = "success"
    INFO = "info"


class CategoryInfo(NamedTuple):
    stream: str
    title: str
    severity: Severity
    route: str
    icon: str


CATEGORIES: Dict[Category, CategoryInfo] = {
    Category.DONATION: CategoryInfo("donations", "New Donation", Severity.SUCCESS, "/admin/donations", "dollar-sign"),
    Category.MEMBER: CategoryInfo("church_members", "New Church Member", Severity.SUCCESS, "/admin/church-members", "users"),
    Category.PRAYER: CategoryInfo("prayer_requests", "New Prayer Request", Severity.INFO, "/admin/prayers", "heart"),
    Category.CONTACT: CategoryInfo("contact_submissions", "New Contact Submission", Severity.INFO, "/admin/contact", "mail"),
    Category.VOLUNTEER: CategoryInfo("volunteer_submissions", "New Volunteer", Severity.SUCCESS, "/admin/volunteers", "hand-heart"),
    Category.EVENT: CategoryInfo("events", "New Event Created", Severity.INFO, "/admin/events", "calendar"),
    Category.SERMON: CategoryInfo("sermons", "New Sermon Added", Severity.INFO, "/admin/sermons", "video"),
}

_unmapped = [c.value for c in Category if c not in CATEGORIES]
if _unmapped:
    raise RuntimeError(f"Categories without presentation info: {_unmapped}")

DEFAULT_ROUTE = "/admin/dashboard"
DEFAULT_ICON = "bell"

STREAMS = tuple(info.stream for info in CATEGORIES.values())
STREAM_CATEGORIES: Dict[str, Category] = {info.stream: category for category, info in CATEGORIES.items()}


def category_for_stream(stream: str) -> Category:
    """Raises KeyError for streams outside the fixed set"""
    return STREAM_CATEGORIES[stream]


def _lookup(category: Union[Category, str]):
    try:
        return CATEGORIES[Category(category)]
    except ValueError:
        return None


def resolve_route(category: Union[Category, str]) -> str:
    info = _lookup(category)
    return info.route if info else DEFAULT_ROUTE


def resolve_icon(category: Union[Category, str]) -> str:
    info = _lookup(category)
    return info.icon if info else DEFAULT_ICON
