"""Payload builders for the trade API methods.

Each builder returns the form fields for one call, minus the nonce which is
added at send time. History filters are checked against a per-method set of
accepted fields; anything else is dropped without complaint.
"""

from __future__ import annotations

from typing import Any, Dict, FrozenSet, Mapping, Optional

_HISTORY_FIELDS = frozenset({"from", "count", "from_id", "end_id", "order", "since", "end"})

HISTORY_FILTER_FIELDS: Dict[str, FrozenSet[str]] = {
    "TradeHistory": _HISTORY_FIELDS | {"pair"},
    "TransHistory": _HISTORY_FIELDS,
}


def filtered_request(method: str, filters: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    """Build a history request keeping only the filters ``method`` accepts."""
    allowed = HISTORY_FILTER_FIELDS[method]
    body: Dict[str, Any] = {"method": method}
    for key, value in (filters or {}).items():
        if key in allowed:
            body[key] = value
    return body


def redeem_coupon(code: str) -> Dict[str, Any]:
    return {"method": "RedeemCoupon", "coupon": code}


def get_info() -> Dict[str, Any]:
    return {"method": "getInfo"}


def trade(pair: str, type: str, rate: str, amount: str) -> Dict[str, Any]:
    # rate/amount go over the wire as the caller formatted them
    return {"method": "Trade", "pair": pair, "type": type, "rate": rate, "amount": amount}


def cancel_order(order_id: str) -> Dict[str, Any]:
    return {"method": "CancelOrder", "order_id": order_id}


def trade_history(filters: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    return filtered_request("TradeHistory", filters)


def trans_history(filters: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    return filtered_request("TransHistory", filters)
