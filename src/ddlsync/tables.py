"""
Built-in table definitions for the link-shortener service.

Used when a configuration file declares no tables of its own.
"""

from .schema.model import (
    NOW,
    CheckConstraint,
    ColumnDefinition,
    ColumnType,
    ReferenceConstraint,
    SchemaModel,
    TableDefinition,
    UniqueConstraint,
)


USERS = TableDefinition(
    name="users",
    columns=(
        ColumnDefinition("id", ColumnType.SERIAL, primary=True, nullable=False,
                         description="Auto-incrementing unique user identifier"),
        ColumnDefinition("email", ColumnType.VARCHAR, char_limit=255, unique=True, nullable=False,
                         description="User email address (used for login)"),
        ColumnDefinition("password_hash", ColumnType.VARCHAR, char_limit=255, nullable=False,
                         description="Bcrypt hashed password"),
        ColumnDefinition("name", ColumnType.VARCHAR, char_limit=100, nullable=True,
                         description="User display name"),
        ColumnDefinition("created_at", ColumnType.TIMESTAMP, nullable=False, default=NOW),
        ColumnDefinition("updated_at", ColumnType.TIMESTAMP, nullable=False, default=NOW),
    ),
    constraints=(
        UniqueConstraint(("email",)),
    ),
    indexes=(
        ("email",),
        ("created_at",),
    ),
)


LINKS = TableDefinition(
    name="links",
    columns=(
        ColumnDefinition("id", ColumnType.SERIAL, primary=True, nullable=False),
        ColumnDefinition("user_id", ColumnType.INTEGER, nullable=False,
                         description="Owner of this link (references users.id)"),
        ColumnDefinition("short_code", ColumnType.VARCHAR, char_limit=8, unique=True, nullable=False),
        ColumnDefinition("target_url", ColumnType.TEXT, nullable=False),
        ColumnDefinition("total_clicks", ColumnType.INTEGER, nullable=False, default=0),
        ColumnDefinition("last_clicked_at", ColumnType.TIMESTAMP, nullable=True),
        ColumnDefinition("created_at", ColumnType.TIMESTAMP, nullable=False, default=NOW),
        ColumnDefinition("updated_at", ColumnType.TIMESTAMP, nullable=False, default=NOW),
    ),
    constraints=(
        ReferenceConstraint("user_id", "users", "id", cascade=True),
        CheckConstraint("short_code ~ '^[A-Za-z0-9]{6,8}$'"),
        CheckConstraint("total_clicks >= 0"),
    ),
    indexes=(
        ("short_code",),
        ("user_id",),
        ("created_at",),
        ("user_id", "created_at"),
    ),
)


CLICKS = TableDefinition(
    name="clicks",
    columns=(
        ColumnDefinition("id", ColumnType.SERIAL, primary=True, nullable=False),
        ColumnDefinition("link_id", ColumnType.INTEGER, nullable=False,
                         description="Link that was clicked (references links.id)"),
        ColumnDefinition("ip_address", ColumnType.INET, nullable=False),
        ColumnDefinition("user_agent", ColumnType.TEXT, nullable=False),
        ColumnDefinition("browser", ColumnType.VARCHAR, char_limit=50),
        ColumnDefinition("os", ColumnType.VARCHAR, char_limit=50),
        ColumnDefinition("device", ColumnType.VARCHAR, char_limit=50),
        ColumnDefinition("country", ColumnType.VARCHAR, char_limit=100),
        ColumnDefinition("city", ColumnType.VARCHAR, char_limit=100),
        ColumnDefinition("referer", ColumnType.TEXT),
        ColumnDefinition("clicked_at", ColumnType.TIMESTAMP, nullable=False, default=NOW),
    ),
    constraints=(
        ReferenceConstraint("link_id", "links", "id", cascade=True),
    ),
    indexes=(
        ("link_id",),
        ("clicked_at",),
        ("link_id", "clicked_at"),
        ("ip_address",),
        ("browser",),
        ("os",),
        ("device",),
        ("country",),
    ),
)


def default_schema() -> SchemaModel:
    """The link-shortener schema: users, then links, then clicks."""
    return SchemaModel([USERS, LINKS, CLICKS])
