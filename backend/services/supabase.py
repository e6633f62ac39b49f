import logging
from typing import Any, Dict, List, Optional

import requests

from errors import IdentityRequired, RemoteUnavailable
from services.pricing import resolve_size
from services.stores import RemoteCart

logger = logging.getLogger(__name__)


class SupabaseCartStore(RemoteCart):
    """
    Remote cart served by the hosted Postgres REST API (PostgREST / Supabase).

    Reads go through the ``cart_items_view`` view and mutations through the
    ``*_with_size`` stored procedures, so row-level security on the hosted side
    stays in charge of who may touch which cart.
    """

    def __init__(self, base_url: str, api_key: str, timeout: float = 10.0,
                 access_token: Optional[str] = None, http=None):
        if not base_url or not api_key:
            raise RuntimeError("SUPABASE_URL and SUPABASE_KEY must be set for the supabase cart backend")
        self._base = base_url.rstrip("/") + "/rest/v1"
        self._timeout = timeout
        self._http = http or requests.Session()
        self._headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {access_token or api_key}",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self._base}/{path}"
        try:
            response = self._http.request(method, url, headers=self._headers, timeout=self._timeout, **kwargs)
        except requests.Timeout as e:
            logger.error(f"Hosted cart call {path} timed out after {self._timeout}s")
            raise RemoteUnavailable(f"Cart service timed out ({path})") from e
        except requests.RequestException as e:
            logger.error(f"Hosted cart call {path} failed: {e}")
            raise RemoteUnavailable(f"Cart service unreachable ({path})") from e

        if response.status_code in (401, 403):
            raise IdentityRequired(f"Cart service rejected the session ({response.status_code})")
        if response.status_code >= 400:
            logger.error(f"Hosted cart call {path} returned {response.status_code}: {response.text[:200]}")
            raise RemoteUnavailable(f"Cart service error {response.status_code} ({path})")
        return response

    def _rpc(self, procedure: str, payload: Dict[str, Any]) -> None:
        self._request("POST", f"rpc/{procedure}", json=payload)

    def read(self, account_id: str) -> List[Dict[str, Any]]:
        account_id = self._require_account(account_id)
        response = self._request(
            "GET",
            "cart_items_view",
            params={"select": "*", "user_id": f"eq.{account_id}", "order": "created_at.asc"},
        )
        try:
            return response.json() or []
        except ValueError as e:
            logger.error(f"Hosted cart read for {account_id} returned invalid JSON: {response.text[:200]}")
            raise RemoteUnavailable("Cart service returned an unreadable response") from e

    def upsert(self, account_id: str, product_id: str, quantity: int, size: str) -> None:
        self._rpc("upsert_cart_item_with_size", {
            "p_user_id": self._require_account(account_id),
            "p_product_id": product_id,
            "p_quantity": quantity,
            "p_selected_size": resolve_size(size),
        })

    def set_quantity(self, account_id: str, product_id: str, quantity: int, size: str) -> None:
        self._rpc("set_cart_item_quantity_with_size", {
            "p_user_id": self._require_account(account_id),
            "p_product_id": product_id,
            "p_quantity": quantity,
            "p_selected_size": resolve_size(size),
        })

    def remove(self, account_id: str, product_id: str, size: str) -> None:
        self._rpc("remove_cart_item_with_size", {
            "p_user_id": self._require_account(account_id),
            "p_product_id": product_id,
            "p_selected_size": resolve_size(size),
        })

    def clear(self, account_id: str) -> None:
        self._rpc("clear_cart", {"p_user_id": self._require_account(account_id)})
