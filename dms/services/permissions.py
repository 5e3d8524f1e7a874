"""
Page level access control.

Pages are identified by ``page_key``. Admins always get full access; other
users see every page that is not explicitly hidden for them, at their
recorded level or view only when nothing is recorded.
"""
from typing import Dict, List

from dms.constants import DEFAULT_PAGES
from dms.models import PageDefinition, User, UserPermission
from dms.utils.logging_utils import logger

FULL_ACCESS = {
    "permission_level": "full_access",
    "can_create": True,
    "can_edit": True,
    "can_delete": True,
    "can_export": True,
}

VIEW_ONLY = {
    "permission_level": "view_only",
    "can_create": False,
    "can_edit": False,
    "can_delete": False,
    "can_export": False,
}


def seed_page_definitions(session) -> int:
    """Insert missing default pages. Returns the number created; the caller commits."""
    existing = {key for (key,) in session.query(PageDefinition.page_key)}
    created = 0
    for page_key, name, category, is_system in DEFAULT_PAGES:
        if page_key in existing:
            continue
        session.add(PageDefinition(
            page_key=page_key,
            page_name=name,
            page_category=category,
            is_system_page=is_system,
        ))
        created += 1
    if created:
        logger.info(f"[Permissions] Seeded {created} page definition(s)")
    return created


def _permission_dict(permission: UserPermission) -> Dict:
    return {
        "permission_level": permission.permission_level,
        "can_create": permission.can_create,
        "can_edit": permission.can_edit,
        "can_delete": permission.can_delete,
        "can_export": permission.can_export,
    }


def accessible_pages(session, user: User) -> List[Dict]:
    pages = session.query(PageDefinition).order_by(PageDefinition.page_category, PageDefinition.page_name).all()
    recorded = {}
    if user.role != "admin":
        recorded = {
            p.page_key: p for p in session.query(UserPermission).filter(UserPermission.user_id == user.id)
        }

    result = []
    for page in pages:
        if user.role == "admin":
            access = FULL_ACCESS
        elif page.page_key in recorded:
            if recorded[page.page_key].permission_level == "hidden":
                continue
            access = _permission_dict(recorded[page.page_key])
        else:
            access = VIEW_ONLY
        result.append({
            "page_key": page.page_key,
            "page_name": page.page_name,
            "page_category": page.page_category,
            "is_system_page": page.is_system_page,
            **access,
        })
    return result
