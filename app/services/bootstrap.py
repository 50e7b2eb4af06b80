"""Default permission catalog, system roles and the initial admin account."""

import logging

from sqlalchemy.orm import Session

from app.core.security import hash_password
from app.models import Permission, Role, User
from app.services import credential_store

logger = logging.getLogger(__name__)

ADMIN_ROLE_ID = "admin"
DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_EMAIL = "admin@company.com"
DEFAULT_ADMIN_PASSWORD = "admin123"

# (id, name, module, description)
DEFAULT_PERMISSIONS: list[tuple[str, str, str, str]] = [
    ("user_view", "View Users", "users", "Can view user list and details"),
    ("user_create", "Create Users", "users", "Can create new users"),
    ("user_edit", "Edit Users", "users", "Can edit existing users"),
    ("user_delete", "Delete Users", "users", "Can delete users"),
    ("user_export", "Export Users", "users", "Can export user data"),
    ("ticket_view", "View Own Tickets", "tickets", "Can view own assigned tickets"),
    ("ticket_view_all", "View All Tickets", "tickets", "Can view all tickets"),
    ("ticket_create", "Create Tickets", "tickets", "Can create new tickets"),
    ("ticket_edit", "Edit Tickets", "tickets", "Can edit tickets"),
    ("ticket_delete", "Delete Tickets", "tickets", "Can delete tickets"),
    ("ticket_assign", "Assign Tickets", "tickets", "Can assign tickets to users"),
    ("ticket_export", "Export Tickets", "tickets", "Can export ticket data"),
    ("quality_view", "View Own Evaluations", "quality", "Can view own quality evaluations"),
    ("quality_view_all", "View All Evaluations", "quality", "Can view all quality evaluations"),
    ("quality_create", "Create Evaluations", "quality", "Can create quality evaluations"),
    ("quality_edit", "Edit Evaluations", "quality", "Can edit quality evaluations"),
    ("quality_delete", "Delete Evaluations", "quality", "Can delete quality evaluations"),
    (
        "quality_manage_categories",
        "Manage QA Categories",
        "quality",
        "Can manage quality categories and criteria",
    ),
    ("quality_export", "Export Quality Data", "quality", "Can export quality data"),
    ("role_view", "View Roles", "roles", "Can view roles and permissions"),
    ("role_create", "Create Roles", "roles", "Can create new roles"),
    ("role_edit", "Edit Roles", "roles", "Can edit existing roles"),
    ("role_delete", "Delete Roles", "roles", "Can delete roles"),
    ("settings_view", "View Settings", "settings", "Can view system settings"),
    ("settings_edit", "Edit Settings", "settings", "Can modify system settings"),
    ("admin_access", "Admin Panel Access", "admin", "Can access admin panel and integrations"),
    ("integration_sharepoint", "SharePoint Integration", "integrations", "Can use SharePoint integration"),
    ("integration_jira", "JIRA Integration", "integrations", "Can use JIRA integration"),
]

ALL_PERMISSION_IDS = [p[0] for p in DEFAULT_PERMISSIONS]

DEFAULT_ROLES: list[dict] = [
    {
        "id": ADMIN_ROLE_ID,
        "name": "Administrator",
        "description": "Full system access with all permissions",
        "is_admin": True,
        "permissions": ALL_PERMISSION_IDS,
    },
    {
        "id": "supervisor",
        "name": "Supervisor",
        "description": "Team lead with management capabilities",
        "is_admin": False,
        "permissions": [
            "user_view", "ticket_view", "ticket_view_all", "ticket_create", "ticket_edit",
            "ticket_assign", "ticket_export", "quality_view", "quality_view_all",
            "quality_create", "quality_edit", "quality_export", "role_view", "settings_view",
        ],
    },
    {
        "id": "qa_analyst",
        "name": "QA Analyst",
        "description": "Quality assurance specialist",
        "is_admin": False,
        "permissions": [
            "user_view", "ticket_view", "ticket_view_all", "quality_view", "quality_view_all",
            "quality_create", "quality_edit", "quality_manage_categories", "quality_export",
        ],
    },
    {
        "id": "agent",
        "name": "Support Agent",
        "description": "Customer support agent with limited access",
        "is_admin": False,
        "permissions": ["ticket_view", "ticket_create", "ticket_edit", "quality_view"],
    },
]


def ensure_permissions(db: Session) -> int:
    """Insert catalog permissions that are missing; returns how many were added."""
    existing = {p.id for p in db.query(Permission).all()}
    added = 0
    for perm_id, name, module, description in DEFAULT_PERMISSIONS:
        if perm_id in existing:
            continue
        db.add(Permission(id=perm_id, name=name, module=module, description=description))
        added += 1
    db.flush()
    return added


def ensure_system_roles(db: Session) -> int:
    """Insert missing system roles and grant the admin role every catalog permission."""
    catalog = {p.id: p for p in db.query(Permission).all()}
    added = 0
    for definition in DEFAULT_ROLES:
        role = credential_store.get_role_by_id(db, definition["id"])
        if role is None:
            role = Role(
                id=definition["id"],
                name=definition["name"],
                description=definition["description"],
                is_admin=definition["is_admin"],
                is_system=True,
                permissions=[catalog[p] for p in definition["permissions"] if p in catalog],
            )
            db.add(role)
            added += 1
        elif role.id == ADMIN_ROLE_ID:
            granted = set(role.permission_names)
            role.permissions.extend(p for pid, p in catalog.items() if pid not in granted)
    db.flush()
    return added


def ensure_admin_user(db: Session, password: str = DEFAULT_ADMIN_PASSWORD) -> User | None:
    """Create the default admin account unless a user named admin already exists."""
    if credential_store.get_user_by_username(db, DEFAULT_ADMIN_USERNAME) is not None:
        return None
    user = User(
        username=DEFAULT_ADMIN_USERNAME,
        email=DEFAULT_ADMIN_EMAIL,
        password_hash=hash_password(password),
        first_name="System",
        last_name="Administrator",
        role_id=ADMIN_ROLE_ID,
        is_active=True,
    )
    db.add(user)
    db.flush()
    logger.warning("Created default admin user '%s'; change its password.", DEFAULT_ADMIN_USERNAME)
    return user


def seed_defaults(db: Session, admin_password: str = DEFAULT_ADMIN_PASSWORD) -> None:
    """Idempotently seed permissions, system roles and the admin user."""
    added_permissions = ensure_permissions(db)
    added_roles = ensure_system_roles(db)
    ensure_admin_user(db, admin_password)
    db.commit()
    logger.info(
        "Seed completed: permissions_added=%s, roles_added=%s",
        added_permissions,
        added_roles,
    )
