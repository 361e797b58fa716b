from __future__ import annotations

from typing import Any

from ticketdesk.core.utils import discord_timestamp, iso_now
from ticketdesk.models.ticket import Ticket

OPEN_SELLER_TICKET = "open_seller_ticket"
OPEN_BUYER_TICKET = "open_buyer_ticket"
SAVE_IMAGES = "save_images"
DELETE_CHANNEL = "delete_channel"
VIEW_TICKET_PREFIX = "view_ticket_"
SELLER_MODAL = "seller_modal"
BUYER_MODAL = "buyer_modal"
AUDIT_COMMAND = "check"

BUTTON_PRIMARY = 1
BUTTON_SUCCESS = 3
BUTTON_DANGER = 4

CHAT_INPUT_COMMAND = 1
STRING_OPTION = 3

GREEN = 0x57F287
BLUE = 0x3498DB
DARK_RED = 0x992D22
ORANGE = 0xE67E22
PURPLE = 0x9B59B6


def button(custom_id: str, label: str, style: int) -> dict[str, Any]:
    return {"type": 2, "custom_id": custom_id, "label": label, "style": style}


def action_row(*buttons: dict[str, Any]) -> dict[str, Any]:
    return {"type": 1, "components": list(buttons)}


def embed(title: str, description: str, color: int) -> dict[str, Any]:
    return {"title": title, "description": description, "color": color, "timestamp": iso_now()}


def ticket_lines(ticket: Ticket, *, owner_label: str = "Created by") -> str:
    return "\n".join(
        [
            f"**UID:** {ticket.identifier}",
            f"**Order details:** {ticket.description or '-'}",
            f"**{owner_label}:** <@{ticket.owner_id}>",
            f"**Created:** {discord_timestamp(ticket.created_at)}",
        ]
    )


def seller_ticket_embed(ticket: Ticket, *, restored: bool = False) -> dict[str, Any]:
    title = f"Seller ticket (restored) - {ticket.identifier}" if restored else f"Order - {ticket.identifier}"
    return embed(title, ticket_lines(ticket), GREEN)


def seller_ticket_actions() -> list[dict[str, Any]]:
    return [
        action_row(
            button(SAVE_IMAGES, "Save images", BUTTON_SUCCESS),
            button(DELETE_CHANNEL, "Quick delete", BUTTON_DANGER),
        )
    ]


def quick_delete_actions() -> list[dict[str, Any]]:
    return [action_row(button(DELETE_CHANNEL, "Quick delete", BUTTON_DANGER))]


def buyer_match_embed(ticket: Ticket) -> dict[str, Any]:
    return embed(f"Order - UID: {ticket.identifier}", ticket_lines(ticket, owner_label="Seller"), BLUE)


def audit_match_embed(ticket: Ticket) -> dict[str, Any]:
    return embed("Order details (ADMIN)", ticket_lines(ticket), PURPLE)


def completed_order_notice(ticket: Ticket) -> tuple[dict[str, Any], list[dict[str, Any]]]:
    notice = embed("New order completed", ticket_lines(ticket), DARK_RED)
    actions = [action_row(button(f"{VIEW_TICKET_PREFIX}{ticket.id}", "View order", BUTTON_PRIMARY))]
    return notice, actions


def duplicate_owner_notice(identifier: str, count: int) -> str:
    return f"⚠️ Found {count} orders sharing UID {identifier}. Please check your submission."


def duplicate_audit_embed(identifier: str, count: int) -> dict[str, Any]:
    return embed("Multiple orders share a UID", f"Found {count} orders with UID: {identifier}", ORANGE)


def seller_panel() -> tuple[dict[str, Any], list[dict[str, Any]]]:
    panel = embed(
        "SUBMIT ORDERS HERE",
        "\n".join(
            [
                "1. Press **Submit order** to open a private ticket.",
                "2. Fill in the **UID** and the order details, then send.",
                "3. Post your photos in the new ticket channel and press **Save images**.",
                "",
                "Spamming tickets is not allowed.",
            ]
        ),
        GREEN,
    )
    return panel, [action_row(button(OPEN_SELLER_TICKET, "Submit order", BUTTON_SUCCESS))]


def buyer_panel() -> tuple[dict[str, Any], list[dict[str, Any]]]:
    panel = embed(
        "LOOK UP ORDERS HERE",
        "\n".join(
            [
                "1. Press **Find UID** to open a lookup ticket.",
                "2. Enter your **UID** to see the matching orders and photos.",
                "",
                "Repeated wrong or spam lookups will be refused.",
            ]
        ),
        BLUE,
    )
    return panel, [action_row(button(OPEN_BUYER_TICKET, "Find UID", BUTTON_PRIMARY))]


def _text_input(custom_id: str, label: str, *, paragraph: bool = False, required: bool = True) -> dict[str, Any]:
    return {
        "type": 1,
        "components": [
            {"type": 4, "custom_id": custom_id, "label": label, "style": 2 if paragraph else 1, "required": required}
        ],
    }


def seller_modal() -> dict[str, Any]:
    return {
        "custom_id": SELLER_MODAL,
        "title": "Submit order",
        "components": [
            _text_input("uid", "UID"),
            _text_input("desc", "Order details", paragraph=True, required=False),
        ],
    }


def audit_command() -> dict[str, Any]:
    return {
        "name": AUDIT_COMMAND,
        "type": CHAT_INPUT_COMMAND,
        "description": "Look up every order saved under a UID",
        "options": [
            {"type": STRING_OPTION, "name": "uid", "description": "Order UID", "required": True},
        ],
    }


def buyer_modal() -> dict[str, Any]:
    return {
        "custom_id": BUYER_MODAL,
        "title": "Find UID",
        "components": [_text_input("uid", "UID to look up")],
    }
