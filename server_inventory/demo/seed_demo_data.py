# server_inventory/demo/seed_demo_data.py

from decimal import Decimal

from server_inventory.core.inventory import Inventory
from server_inventory.storage.db import DEFAULT_DB_PATH


def seed_demo_inventory(db_path: str = DEFAULT_DB_PATH) -> Inventory:
    """Fill the database with a small example fleet and return the inventory."""
    inventory = Inventory(db_path)

    hetzner = inventory.providers.create(
        name="Hetzner",
        console_url="https://console.hetzner.cloud",
    )
    alice = inventory.people.create(name="Alice", email="alice@example.com", telegram="@alice")

    web = inventory.servers.create(
        name="web-1",
        hostname="web1.local",
        ip_public="203.0.113.10",
        port=22,
        provider_id=hetzner.id,
        owner_id=alice.id,
        cost_month_estimated=Decimal("12.50"),
        os="Debian 12",
        location="fsn1",
    )
    inventory.cost_snapshots.create(
        server_id=web.id, month="2024-01", cost_month=Decimal("12.50"), source="Hetzner Invoice"
    )

    inventory.servers.create(
        name="ci-runner",
        hostname="ci.local",
        status="STANDBY",
        purpose="DEV",
        billing_type="HOURLY",
        provider_id=hetzner.id,
    )
    return inventory


if __name__ == "__main__":
    seed_demo_inventory()
    print("Demo inventory data inserted")
