"""The seven tracked tables and their foreign-key dependency order."""

# Forward (write) order: parents before children.
RESTORE_ORDER: tuple[str, ...] = (
    "departments",
    "users",
    "assets",
    "issues",
    "asset_requests",
    "notifications",
    "user_notification_preferences",
)

# Clear-before-restore deletes children before parents.
CLEAR_ORDER: tuple[str, ...] = tuple(reversed(RESTORE_ORDER))

USER_TABLES: frozenset[str] = frozenset({"users"})
NOTIFICATION_TABLES: frozenset[str] = frozenset(
    {"notifications", "user_notification_preferences"}
)
