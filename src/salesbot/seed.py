"""Destination seeding from destinations.yaml."""

from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from salesbot.storage.subscriptions import SubscriptionStore


def _collection_entry(entry: Any) -> tuple[str, str | None]:
    if isinstance(entry, str):
        return entry, None
    return str(entry["collection_id"]), entry.get("name")


def seed_destinations(
    destinations_path: str = "destinations.yaml",
    store: SubscriptionStore | None = None,
) -> dict[str, int]:
    """Upsert destinations and their tracked collections from a YAML file.

    Returns:
        dict with counts:
            {destinations_created, destinations_updated, collections_added}
    """
    path = Path(destinations_path)
    if not path.exists():
        raise FileNotFoundError(f"Destinations file not found: {destinations_path}")

    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError("destinations.yaml must contain a top-level mapping")
    destinations_data: list[dict[str, Any]] = data.get("destinations", [])

    store = store or SubscriptionStore()
    stats = {"destinations_created": 0, "destinations_updated": 0, "collections_added": 0}

    for item in destinations_data:
        destination_id = str(item["destination_id"])
        created = store.upsert_destination(
            destination_id=destination_id,
            name=item.get("name") or destination_id,
            primary_channel_id=str(item["primary_channel_id"]),
            listings_channel_id=str(item["listings_channel_id"]) if item.get("listings_channel_id") else None,
            enabled=item.get("enabled", True),
        )
        if created:
            stats["destinations_created"] += 1
        else:
            stats["destinations_updated"] += 1

        for entry in item.get("collections", []):
            collection_id, name = _collection_entry(entry)
            if store.add_collection(destination_id, collection_id, name):
                stats["collections_added"] += 1

    return stats
