"""LogiFlex API client."""

from typing import Any, Optional

import requests


class LogiFlexAPIError(Exception):
    """Non-2xx response from the API."""

    def __init__(self, status_code: int, detail: str, code: Optional[str] = None, field: Optional[str] = None):
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail
        self.code = code
        self.field = field


class LogiFlexClient:
    """Client for the LogiFlex marketplace API."""

    def __init__(self, api_key: str, base_url: str = "http://localhost:8000", timeout: float = 30.0):
        """Initialize client."""
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"x-api-key": api_key})

    def _request(self, method: str, path: str, **kwargs) -> Any:
        response = self.session.request(method, f"{self.base_url}{path}", timeout=self.timeout, **kwargs)
        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {"detail": response.text}
            detail = body.get("detail", response.reason)
            raise LogiFlexAPIError(response.status_code, str(detail), body.get("code"), body.get("field"))
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # Cargo

    def create_cargo(
        self,
        title: str,
        category: str,
        origin: str,
        destination: str,
        weight: float,
        price: float,
        pickup_date: str,
        delivery_date: Optional[str] = None,
        description: Optional[str] = None,
        auction_end_date: Optional[str] = None,
    ) -> dict:
        """Publish a cargo listing."""
        payload = {
            "title": title,
            "category": category,
            "origin": origin,
            "destination": destination,
            "weight": weight,
            "price": price,
            "pickup_date": pickup_date,
            "delivery_date": delivery_date,
            "description": description,
            "auction_end_date": auction_end_date,
        }
        return self._request("POST", "/v1/cargo", json=payload)

    def list_cargo(self, status: Optional[str] = None, user_id: Optional[str] = None) -> list[dict]:
        """List cargo listings."""
        params = {k: v for k, v in {"status": status, "user_id": user_id}.items() if v is not None}
        return self._request("GET", "/v1/cargo", params=params)

    def get_cargo(self, cargo_id: str) -> dict:
        return self._request("GET", f"/v1/cargo/{cargo_id}")

    def update_cargo(self, cargo_id: str, **changes) -> dict:
        """Edit an active listing you own; pass only the fields to change."""
        return self._request("PATCH", f"/v1/cargo/{cargo_id}", json=changes)

    def cancel_cargo(self, cargo_id: str) -> dict:
        return self._request("POST", f"/v1/cargo/{cargo_id}/cancel")

    # Bids

    def place_bid(
        self,
        cargo_id: str,
        bid_amount: float,
        delivery_time: str,
        vehicle_type: str,
        message: Optional[str] = None,
    ) -> dict:
        """Bid on a cargo."""
        payload = {
            "cargo_id": cargo_id,
            "bid_amount": bid_amount,
            "delivery_time": delivery_time,
            "vehicle_type": vehicle_type,
            "message": message,
        }
        return self._request("POST", "/v1/bids", json=payload)

    def list_bids(self, cargo_id: str) -> list[dict]:
        return self._request("GET", f"/v1/cargo/{cargo_id}/bids")

    def my_bids(self) -> list[dict]:
        return self._request("GET", "/v1/bids/my-bids")

    def accept_bid(self, bid_id: str) -> dict:
        """Accept a bid; the response carries the created transaction."""
        return self._request("PATCH", f"/v1/bids/{bid_id}/status", json={"status": "accepted"})

    def reject_bid(self, bid_id: str) -> dict:
        return self._request("PATCH", f"/v1/bids/{bid_id}/status", json={"status": "rejected"})

    # Transactions

    def list_transactions(self) -> list[dict]:
        return self._request("GET", "/v1/transactions")

    def get_transaction(self, transaction_id: str) -> dict:
        return self._request("GET", f"/v1/transactions/{transaction_id}")

    def update_transaction_status(self, transaction_id: str, status: str) -> dict:
        """Advance a transaction one step."""
        return self._request("PATCH", f"/v1/transactions/{transaction_id}/status", json={"status": status})

    # Reputation

    def rate(
        self,
        user_id: str,
        transaction_id: str,
        on_time_delivery: int,
        cargo_condition: int,
        communication: int,
        documentation: int,
    ) -> dict:
        """Rate the other party of a completed transaction."""
        payload = {
            "user_id": user_id,
            "transaction_id": transaction_id,
            "on_time_delivery": on_time_delivery,
            "cargo_condition": cargo_condition,
            "communication": communication,
            "documentation": documentation,
        }
        return self._request("POST", "/v1/rws", json=payload)

    def get_rws(self, user_id: str, extended: bool = False) -> dict:
        suffix = "/extended" if extended else ""
        return self._request("GET", f"/v1/rws/{user_id}{suffix}")

    # E-TTN

    def create_ettn(self, transaction_id: str) -> dict:
        return self._request("POST", "/v1/ettn", json={"transaction_id": transaction_id})

    def get_ettn(self, ettn_id: str) -> dict:
        return self._request("GET", f"/v1/ettn/{ettn_id}")

    def get_transaction_ettn(self, transaction_id: str) -> dict:
        return self._request("GET", f"/v1/transactions/{transaction_id}/ettn")

    def sign_ettn(self, ettn_id: str) -> dict:
        """Sign an E-TTN with the caller's certificate."""
        return self._request("PATCH", f"/v1/ettn/{ettn_id}/sign")

    def list_signatures(self, ettn_id: str) -> list[dict]:
        return self._request("GET", f"/v1/ettn/{ettn_id}/signatures")

    def verify_signature(self, signature_id: str) -> dict:
        return self._request("POST", f"/v1/ettn/signatures/{signature_id}/verify")

    # Messages and notifications

    def send_message(self, transaction_id: str, content: str) -> dict:
        return self._request("POST", "/v1/messages", json={"transaction_id": transaction_id, "content": content})

    def list_messages(self, transaction_id: str) -> list[dict]:
        return self._request("GET", f"/v1/messages/{transaction_id}")

    def list_notifications(self, unread_only: bool = False) -> list[dict]:
        return self._request("GET", "/v1/notifications", params={"unread_only": str(unread_only).lower()})

    def mark_notification_read(self, notification_id: str) -> dict:
        return self._request("PATCH", f"/v1/notifications/{notification_id}/read")

    def me(self) -> dict:
        return self._request("GET", "/v1/users/me")

    def switch_role(self, role: str) -> dict:
        """Switch between shipper and carrier."""
        return self._request("PATCH", "/v1/users/me/role", json={"role": role})
