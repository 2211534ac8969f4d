# liquidity/notifications/templates.py
"""Subject/body formatting per event type. Visual design lives elsewhere."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from html import escape
from typing import Any, Mapping, Tuple

from liquidity.notifications.events import EventType, NotificationEvent


@dataclass(frozen=True)
class EmailContent:
    subject: str
    html: str


def money(value: Any) -> str:
    if value is None:
        return "-"
    return f"${Decimal(str(value)):,.2f}"


def _rows(pairs: Tuple[Tuple[str, Any], ...]) -> str:
    return "".join(
        f"<p>{escape(label)}: <strong>{escape(str(value))}</strong></p>"
        for label, value in pairs
        if value is not None
    )


def _page(title: str, intro: str, body: str = "") -> str:
    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\"></head><body>"
        f"<h1>{escape(title)}</h1><p>{escape(intro)}</p>{body}"
        "</body></html>"
    )


def render_email(event: NotificationEvent) -> EmailContent:
    d: Mapping[str, Any] = event.data
    number = d.get("request_number")
    t = event.type

    if t == EventType.REQUEST_SUBMITTED:
        return EmailContent(
            f"Liquidity Request Received - #{number}",
            _page(
                "Request Received",
                "Your liquidity request has been submitted and is pending review.",
                _rows((
                    ("Request #", number),
                    ("Property", d.get("property_name")),
                    ("Tokens", d.get("quantity")),
                    ("Net Payout", money(d.get("net_payout"))),
                )),
            ),
        )
    if t == EventType.REQUEST_APPROVED:
        return EmailContent(
            f"Liquidity Request Approved - #{number}",
            _page(
                "Request Approved",
                "Your liquidity request has been approved and is being prepared for processing.",
                _rows((("Request #", number), ("Net Payout", money(d.get("net_payout"))))),
            ),
        )
    if t == EventType.REQUEST_PROCESSING:
        return EmailContent(
            "Your Liquidity Payout is Being Processed",
            _page(
                "Processing Your Payout",
                "Your payout is being transferred to your linked bank account.",
                _rows((("Transfer Amount", money(d.get("net_payout"))),)),
            ),
        )
    if t == EventType.REQUEST_COMPLETED:
        return EmailContent(
            f"Liquidity Payout Complete - {money(d.get('net_payout'))} Deposited",
            _page(
                "Payout Complete",
                "Your liquidity payout has been deposited to your bank account.",
                _rows((
                    ("Amount Deposited", money(d.get("net_payout"))),
                    ("Reference", d.get("payout_reference")),
                )),
            ),
        )
    if t == EventType.REQUEST_DENIED:
        return EmailContent(
            f"Liquidity Request Update - #{number}",
            _page(
                "Request Update",
                "We were unable to process your liquidity request at this time. "
                "You can still list your tokens on the secondary market.",
                _rows((("Reason", d.get("denial_reason")),)),
            ),
        )
    if t == EventType.REQUEST_CANCELLED:
        return EmailContent(
            f"Liquidity Request Cancelled - #{number}",
            _page("Request Cancelled", "Your liquidity request was cancelled.", _rows((("Request #", number),))),
        )
    if t == EventType.ADMIN_NEW_REQUEST:
        return EmailContent(
            f"New Liquidity Request - {money(d.get('gross_value'))} - {d.get('property_name') or d.get('offering_id')}",
            _page(
                "New Liquidity Request",
                "Review and approve this request in the admin dashboard.",
                _rows((
                    ("Request #", number),
                    ("Investor", d.get("investor_email") or d.get("investor_id")),
                    ("Property", d.get("property_name")),
                    ("Tokens", d.get("quantity")),
                    ("Gross Value", money(d.get("gross_value"))),
                    ("Fee", money(d.get("fee_amount"))),
                    ("Net Payout", money(d.get("net_payout"))),
                )),
            ),
        )
    if t == EventType.RESERVE_LOW_WARNING:
        return EmailContent(
            f"Liquidity Reserve Below Threshold - {d.get('property_name') or d.get('offering_id')}",
            _page(
                "Low Reserve Alert",
                "The liquidity reserve has fallen below the 20% threshold. "
                "Action may be needed to replenish it.",
                _rows((
                    ("Current Balance", money(d.get("reserve_balance"))),
                    ("Target Balance", money(d.get("reserve_target"))),
                    ("Pending Requests", d.get("pending_requests_count")),
                )),
            ),
        )
    if t == EventType.SPONSOR_MONTHLY_SUMMARY:
        return EmailContent(
            f"Monthly Liquidity Report - {d.get('property_name') or d.get('offering_id')}",
            _page(
                "Monthly Liquidity Report",
                str(d.get("property_name") or d.get("offering_id")),
                _rows((
                    ("Redemptions This Month", d.get("monthly_redemptions")),
                    ("Total Amount", money(d.get("monthly_amount"))),
                    ("Reserve Balance", money(d.get("reserve_balance"))),
                )),
            ),
        )
    return EmailContent("Liquidity Notification", _page("Notification", "You have a new notification."))


IN_APP_TITLES = {
    EventType.REQUEST_SUBMITTED: "Liquidity Request Submitted",
    EventType.REQUEST_APPROVED: "Liquidity Request Approved!",
    EventType.REQUEST_PROCESSING: "Payout Processing",
    EventType.REQUEST_COMPLETED: "Payout Complete!",
    EventType.REQUEST_DENIED: "Liquidity Request Update",
    EventType.REQUEST_CANCELLED: "Liquidity Request Cancelled",
}


def render_in_app(event: NotificationEvent) -> Tuple[str, str]:
    d = event.data
    title = IN_APP_TITLES.get(event.type, "Liquidity Update")
    message = f"Request #{d.get('request_number')} - {money(d.get('net_payout'))}"
    return title, message


def render_operator_text(event: NotificationEvent) -> str:
    d = event.data
    if event.type == EventType.RESERVE_LOW_WARNING:
        return (
            f"Low reserve: {d.get('property_name') or d.get('offering_id')}\n"
            f"balance {money(d.get('reserve_balance'))} / target {money(d.get('reserve_target'))}\n"
            f"pending requests: {d.get('pending_requests_count')}"
        )
    return (
        f"New liquidity request #{d.get('request_number')}\n"
        f"{d.get('property_name') or d.get('offering_id')}: {d.get('quantity')} tokens, "
        f"net {money(d.get('net_payout'))}"
    )
