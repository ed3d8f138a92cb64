"""Seed the local cache and outbox with realistic demo data.

Creates:
  - 3 operation types (receipts, deliveries, internal)
  - 4 partners, 3 users, 8 products
  - 12 pickings in mixed states, with 2-3 stock moves each
  - 4 done pickings in the returns partition
  - 3 queued offline operations (validate, update, create)

Run:
    python -m execution.seed_mock_data          (from project root)
    python execution/seed_mock_data.py          (direct)

WARNING: partitions are replaced, but the outbox entries are added to
whatever is already queued.
"""

import os
import sys
from datetime import datetime, timedelta

# Ensure project src is on the path
_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, os.path.join(_ROOT, "src"))

from picking_sync.config import Config
from picking_sync.database.cache_store import EntityCacheStore
from picking_sync.database.connection import DatabaseConnection
from picking_sync.database.models import EntityKind, OperationKind
from picking_sync.database.outbox import Outbox
from picking_sync.database.schema import initialize_database
from picking_sync.utils.formatters import format_odoo_datetime

STATES = ["draft", "confirmed", "waiting", "assigned", "assigned", "done"]


def seed(cache: EntityCacheStore, outbox: Outbox):
    """Populate the cache and the outbox with mock data."""
    now = datetime.now().replace(microsecond=0)

    # ── 1. Reference data ────────────────────────────────────────
    print("Creating reference data...")
    operation_types = [
        {"id": 1, "name": "Receipts", "code": "incoming",
         "warehouse_id": [1, "Main Warehouse"],
         "default_location_src_id": [4, "Partners/Vendors"],
         "default_location_dest_id": [8, "WH/Stock"]},
        {"id": 2, "name": "Delivery Orders", "code": "outgoing",
         "warehouse_id": [1, "Main Warehouse"],
         "default_location_src_id": [8, "WH/Stock"],
         "default_location_dest_id": [5, "Partners/Customers"]},
        {"id": 3, "name": "Internal Transfers", "code": "internal",
         "warehouse_id": [1, "Main Warehouse"],
         "default_location_src_id": [8, "WH/Stock"],
         "default_location_dest_id": [8, "WH/Stock"]},
    ]
    partners = [
        {"id": 11, "name": "Azure Interior", "city": "Fremont"},
        {"id": 12, "name": "Deco Addict", "city": "Tracy"},
        {"id": 13, "name": "Gemini Furniture", "city": "Fairfield"},
        {"id": 14, "name": "Lumber Inc", "city": "Stockton"},
    ]
    users = [
        {"id": 2, "name": "Mitchell Admin", "login": "admin"},
        {"id": 6, "name": "Marc Demo", "login": "demo"},
        {"id": 7, "name": "Joel Willis", "login": "portal"},
    ]
    products = [
        {"id": 100 + i, "name": name, "default_code": f"FURN_{i:04d}",
         "uom_id": [1, "Units"]}
        for i, name in enumerate([
            "Office Chair", "Desk Combination", "Cabinet with Doors",
            "Large Desk", "Corner Desk", "Drawer Black", "Storage Box",
            "Acoustic Bloc Screens",
        ])
    ]
    cache.save_partition(EntityKind.OPERATION_TYPE, operation_types)
    cache.save_partition(EntityKind.PARTNER, partners)
    cache.save_partition(EntityKind.USER, users)
    cache.save_partition(EntityKind.PRODUCT, products)
    print(f"  → {len(operation_types)} operation types, {len(partners)} partners, "
          f"{len(users)} users, {len(products)} products")

    # ── 2. Pickings and moves ────────────────────────────────────
    print("Creating pickings...")
    prefixes = {1: "WH/IN", 2: "WH/OUT", 3: "WH/INT"}
    pickings, moves = [], []
    move_id = 1000
    for i in range(12):
        op_type = operation_types[i % 3]
        partner = partners[i % len(partners)]
        user = users[i % 2] if i % 4 else None
        scheduled = now + timedelta(days=i - 5)
        pickings.append({
            "id": 500 + i,
            "name": f"{prefixes[op_type['id']]}/{i + 1:05d}",
            "partner_id": [partner["id"], partner["name"]],
            "picking_type_id": [op_type["id"], op_type["name"]],
            "picking_type_code": op_type["code"],
            "scheduled_date": format_odoo_datetime(scheduled),
            "date_deadline": format_odoo_datetime(scheduled + timedelta(days=2)),
            "state": STATES[i % len(STATES)],
            "origin": f"S{i + 30:05d}" if i % 3 else False,
            "user_id": [user["id"], user["name"]] if user else False,
            "backorder_id": [500 + i - 1, "previous"] if i in (4, 9) else False,
            "activity_exception_decoration": "warning" if i == 7 else False,
            "has_deadline_issue": i == 2,
        })
        for j in range(2 + i % 2):
            product = products[(i + j) % len(products)]
            moves.append({
                "id": move_id,
                "product_id": [product["id"], product["name"]],
                "product_uom_qty": float(j + 1),
                "quantity": float(j),
                "product_uom": 1,
                "picking_id": [500 + i, pickings[-1]["name"]],
                "state": pickings[-1]["state"],
            })
            move_id += 1
    cache.save_partition(EntityKind.PICKING, pickings)
    cache.save_partition(EntityKind.STOCK_MOVE, moves)
    print(f"  → {len(pickings)} pickings, {len(moves)} stock moves")

    returns = [dict(p, id=p["id"] + 100, state="done") for p in pickings[:4]]
    cache.save_partition(EntityKind.RETURN_PICKING, returns)
    print(f"  → {len(returns)} returnable pickings")

    # ── 3. Offline work ──────────────────────────────────────────
    print("Queueing offline operations...")
    ready = next(p for p in pickings if p["state"] == "assigned")
    outbox.enqueue(OperationKind.VALIDATE, ready["id"],
                   {"picking_name": ready["name"]}, ready["name"])
    outbox.enqueue(OperationKind.UPDATE, pickings[1]["id"],
                   {"origin": "Phone order"}, pickings[1]["name"])
    local_id = outbox.enqueue(OperationKind.CREATE, payload={
        "operation_type_id": 2,
        "partner_id": 12,
        "scheduled_date": format_odoo_datetime(now + timedelta(days=1)),
        "products": [{"product_id": 101, "product_uom_qty": 3,
                      "product_name": "Desk Combination"}],
    }, subject_name="New delivery")
    print(f"  → 3 operations queued (new delivery as local id {local_id})")


def main():
    db = DatabaseConnection(Config.DATABASE_PATH)
    initialize_database(db)
    seed(EntityCacheStore(db), Outbox(db))
    print(f"Done. Seeded {Config.DATABASE_PATH}")


if __name__ == "__main__":
    main()
