# models.py
from sqlalchemy import Table, Column, String, Float, Boolean, DateTime, ForeignKey, func

from .database import metadata

# ---------------------------------------------------------------------------
# Tables (mirror of the hosted backend schema)
# ---------------------------------------------------------------------------
restaurant_locations = Table(
    "restaurant_locations",
    metadata,
    Column("id", String, primary_key=True),
    Column("name", String, nullable=False),
    Column("created_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
)

orders = Table(
    "orders",
    metadata,
    Column("id", String, primary_key=True),
    Column("location_id", String, ForeignKey("restaurant_locations.id"), nullable=True),
    Column("total_amount", Float, nullable=True),
    Column("status", String, nullable=False, default="new"),
    Column("created_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
)

waiter_calls = Table(
    "waiter_calls",
    metadata,
    Column("id", String, primary_key=True),
    Column("location_id", String, ForeignKey("restaurant_locations.id"), nullable=True),
    Column("is_resolved", Boolean, nullable=False, default=False),
    Column("created_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
)

TABLES = {
    "restaurant_locations": restaurant_locations,
    "orders": orders,
    "waiter_calls": waiter_calls,
}
