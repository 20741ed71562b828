"""Notification payloads and delivery sinks."""

from __future__ import annotations

from typing import Any, Protocol

from salesbot.ingest.events import Event, EventClass, SourceFeed
from salesbot.outbound.discord_client import DiscordClient

SALE_COLOR = 0xFFFFFF
LISTING_COLOR = 0x00FF41

MARKETPLACE_NAMES = {
    SourceFeed.A: "SentX",
    SourceFeed.B: "Kabila",
}

REACTIONS = {
    EventClass.SALE: "🔥",
    EventClass.LISTING: "📝",
}


def rarity_tier(rarity: float) -> str:
    percentage = rarity * 100
    if percentage <= 1:
        return "Legendary"
    if percentage <= 5:
        return "Epic"
    if percentage <= 20:
        return "Rare"
    if percentage <= 40:
        return "Uncommon"
    return "Common"


def format_account(account_id: str | None) -> str:
    if not account_id:
        return "Unknown"
    if len(account_id) > 15:
        return f"{account_id[:6]}...{account_id[-4:]}"
    return account_id


def format_hbar(price_hbar: float) -> str:
    return f"{price_hbar:,.2f}".rstrip("0").rstrip(".")


def build_embed(event: Event, hbar_usd_rate: float, floor_price_hbar: float | None = None) -> dict[str, Any]:
    """Build a Discord embed for a sale or listing.

    USD figures are shown only for HBAR prices. When a collection floor is known
    it goes in the author line, and listings also show their price against it.
    """
    name = event.display_name or f"NFT #{event.serial_number}"
    marketplace = MARKETPLACE_NAMES.get(event.source_feed, event.source_feed.value)
    priced_in_hbar = event.price_currency.upper() == "HBAR"
    amount = f"{format_hbar(event.price_hbar)} {event.price_currency}"
    if priced_in_hbar:
        usd = event.price_hbar * hbar_usd_rate
        price_line = f"{amount} ≈ ${usd:,.2f} USD"
        headline = f"**${usd:,.2f} USD** ({amount})"
    else:
        price_line = amount
        headline = f"**{amount}**"

    if event.event_class is EventClass.SALE:
        title = f"🎉 {name} just sold!"
        description = f"A new sale happened on {marketplace} for {headline}"
        color = SALE_COLOR
        details_name = "Sale Details"
    else:
        title = f"📝 {name} listed for sale!"
        description = f"A new listing appeared on {marketplace} for {headline}"
        color = LISTING_COLOR
        details_name = "Listing Details"

    details = [
        f"💰 **Price:** {price_line}",
        f"🏪 **Marketplace:** {marketplace}",
        f"📦 **Collection:** {event.collection_name or event.collection_id}",
        f"🔢 **NFT #:** {event.serial_number}",
    ]
    fields: list[dict[str, Any]] = [{"name": details_name, "value": "\n".join(details), "inline": False}]

    if event.rank_info is not None:
        rarity_lines: list[str] = []
        if event.rank_info.rank is not None:
            rarity_lines.append(f"🏆 **Rank:** #{event.rank_info.rank} in collection")
        if event.rank_info.rarity is not None:
            percent = round(event.rank_info.rarity * 100, 1)
            rarity_lines.append(f"✨ **Rarity:** {rarity_tier(event.rank_info.rarity)} ({percent}%)")
        if rarity_lines:
            fields.append({"name": "Rarity Info", "value": "\n".join(rarity_lines), "inline": False})

    parties = [f"**Seller:** `{format_account(event.counterparty_from)}`"]
    if event.event_class is EventClass.SALE:
        parties.insert(0, f"**Buyer:** `{format_account(event.counterparty_to)}`")
    fields.append({"name": "Trading Parties", "value": "\n".join(parties), "inline": False})

    embed: dict[str, Any] = {
        "title": title,
        "description": description,
        "color": color,
        "fields": fields,
        "timestamp": event.occurred_at.isoformat(),
        "footer": {"text": f"{marketplace} • {event.collection_id}"},
    }
    if floor_price_hbar:
        embed["author"] = {"name": _floor_line(event, hbar_usd_rate, floor_price_hbar, priced_in_hbar)}
    if event.marketplace_url:
        embed["url"] = event.marketplace_url
    if event.image_reference:
        embed["image"] = {"url": _image_url(event.image_reference)}
    return embed


def _floor_line(event: Event, hbar_usd_rate: float, floor_price_hbar: float, priced_in_hbar: bool) -> str:
    floor_usd = floor_price_hbar * hbar_usd_rate
    line = (
        f"{event.collection_name or event.collection_id} Collection"
        f" • Floor: {format_hbar(floor_price_hbar)} HBAR (${floor_usd:,.2f})"
    )
    if event.event_class is EventClass.LISTING and priced_in_hbar:
        versus_floor = (event.price_hbar / floor_price_hbar - 1) * 100
        line += f" • {versus_floor:+.1f}%"
    return line


def _image_url(reference: str) -> str:
    if reference.startswith("ipfs://"):
        return "https://ipfs.io/ipfs/" + reference.removeprefix("ipfs://")
    return reference


def build_message(event: Event, hbar_usd_rate: float, floor_price_hbar: float | None = None) -> dict[str, Any]:
    return {"embeds": [build_embed(event, hbar_usd_rate, floor_price_hbar)]}


class NotificationSink(Protocol):
    name: str

    def send(self, channel_ref: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Deliver a message and return {ok, error, message_id}."""

    def react(self, channel_ref: str, message_id: str, emoji: str) -> dict[str, Any]:
        """Attach a reaction to a delivered message."""


class DiscordSink:
    name = "discord"

    def __init__(self, client: DiscordClient | None = None):
        self._client = client or DiscordClient()

    def send(self, channel_ref: str, payload: dict[str, Any]) -> dict[str, Any]:
        return self._client.send_channel_message(channel_ref, payload)

    def react(self, channel_ref: str, message_id: str, emoji: str) -> dict[str, Any]:
        return self._client.add_reaction(channel_ref, message_id, emoji)
