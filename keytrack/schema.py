# =======================================================================================
# keytrack/schema.py - Table Definitions
# =======================================================================================
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)

from .utils.clock import utcnow

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("name", String(200), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("role", String(20), nullable=False, default="faculty"),
    Column("password_hash", String(255), nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("created_at", DateTime, nullable=False, default=utcnow),
)

auth_tokens = Table(
    "auth_tokens",
    metadata,
    Column("token", String(128), primary_key=True),
    Column("user_id", String(32), ForeignKey("users.id"), nullable=False, index=True),
    Column("created_at", DateTime, nullable=False, default=utcnow),
)

# holder_* columns are all NULL exactly when status = 'available'
keys = Table(
    "key_records",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("key_number", String(50), nullable=False, unique=True),
    Column("key_name", String(200), nullable=False),
    Column("location", String(200), nullable=False),
    Column("category", String(20), nullable=False, default="other"),
    Column("department", String(50), nullable=False, default="COMMON"),
    Column("description", Text, nullable=False, default=""),
    Column("status", String(20), nullable=False, default="available", index=True),
    Column("holder_user_id", String(32), nullable=True, index=True),
    Column("holder_name", String(200), nullable=True),
    Column("holder_email", String(255), nullable=True),
    Column("taken_at", DateTime, nullable=True),
    Column("returned_at", DateTime, nullable=True),
    Column("frequently_used", Boolean, nullable=False, default=False, index=True),
    Column("is_active", Boolean, nullable=False, default=True, index=True),
    Column("created_at", DateTime, nullable=False, default=utcnow),
    Column("updated_at", DateTime, nullable=False, default=utcnow, onupdate=utcnow),
)

key_usage = Table(
    "key_usage",
    metadata,
    Column("user_id", String(32), primary_key=True),
    Column("key_id", String(32), ForeignKey("key_records.id"), primary_key=True),
    Column("use_count", Integer, nullable=False, default=0),
)

key_logs = Table(
    "key_logs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("key_id", String(32), nullable=False, index=True),
    Column("key_number", String(50), nullable=False),
    Column("action", String(30), nullable=False),
    Column("user_id", String(32), nullable=True),
    Column("scanner_id", String(32), nullable=True),
    Column("original_holder_id", String(32), nullable=True),
    Column("reason", Text, nullable=True),
    Column("is_batch", Boolean, nullable=False, default=False),
    Column("created_at", DateTime, nullable=False, default=utcnow),
)
