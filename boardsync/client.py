"""
HTTP client for the kanban backend's row-level endpoints.

API:
    GET    /api/v1/kanbancards       → [card, ...]
    GET    /api/v1/kanbancolumns     → [column, ...]
    POST   /api/v1/kanbancards       → card
    POST   /api/v1/kanbancolumns     body: { kanbanBoardId, name, order } → column
    PUT    /api/v1/kanbancards       body: { id, kanbanColumnId, order } → card
    PUT    /api/v1/kanbancolumns     body: { id, kanbanBoardId, order } → column
    DELETE /api/v1/kanbancards/{id}

Transport failures, timeouts and 5xx become NetworkError; other 4xx become
ValidationError. Responses may be bare entities or wrapped as {"data": ...}.
"""
import logging
from typing import Any, Dict, List, Optional

import requests

from .errors import NetworkError, ValidationError
from .schema import Card, CardMove, Column, ColumnMove, EntityId

logger = logging.getLogger(__name__)

API_VERSION = "/api/v1"
CARDS_PATH = f"{API_VERSION}/kanbancards"
COLUMNS_PATH = f"{API_VERSION}/kanbancolumns"


def _unwrap(body: Any) -> Any:
    if isinstance(body, dict) and "data" in body and "id" not in body:
        return body["data"]
    return body


class KanbanApiClient:
    """Blocking client; the dispatcher runs it in worker threads."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json", "Accept": "application/json"})
        if api_key:
            self.session.headers["X-API-Key"] = api_key

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            r = self.session.request(method, url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise NetworkError(f"{method} {path}: {e}") from e

        if r.status_code >= 500:
            raise NetworkError(f"{method} {path}: server error {r.status_code}", r.status_code)
        if r.status_code >= 400:
            raise ValidationError(f"{method} {path}: rejected {r.status_code}: {_error_text(r)}", r.status_code)

        if not r.content:
            return None
        try:
            return _unwrap(r.json())
        except ValueError as e:
            raise NetworkError(f"{method} {path}: invalid JSON response") from e

    # ── Cards ────────────────────────────────────────────────────────────

    def list_cards(self) -> List[Card]:
        return [Card.from_dict(d) for d in self._request("GET", CARDS_PATH) or []]

    def create_card(
        self,
        column_id: EntityId,
        title: str,
        order: int,
        description: str = "",
    ) -> Card:
        payload = {"kanbanColumnId": column_id, "title": title, "order": order}
        if description:
            payload["description"] = description
        return Card.from_dict(self._request("POST", CARDS_PATH, payload))

    def update_card(self, move: CardMove) -> Optional[Card]:
        """Write one card's full target position."""
        body = self._request("PUT", CARDS_PATH, move.to_payload())
        logger.debug(f"PUT card {move.card_id!r} -> {move.column_id!r}[{move.order}]")
        return Card.from_dict(body) if isinstance(body, dict) else None

    def delete_card(self, card_id: EntityId) -> None:
        self._request("DELETE", f"{CARDS_PATH}/{card_id}")

    # ── Columns ──────────────────────────────────────────────────────────

    def list_columns(self) -> List[Column]:
        return [Column.from_dict(d) for d in self._request("GET", COLUMNS_PATH) or []]

    def create_column(self, board_id: EntityId, name: str, order: int) -> Column:
        payload = {"kanbanBoardId": board_id, "name": name, "order": order}
        return Column.from_dict(self._request("POST", COLUMNS_PATH, payload))

    def update_column(self, move: ColumnMove) -> Optional[Column]:
        """Write one column's full target position."""
        body = self._request("PUT", COLUMNS_PATH, move.to_payload())
        return Column.from_dict(body) if isinstance(body, dict) else None

    def close(self) -> None:
        self.session.close()


def _error_text(r: requests.Response) -> str:
    try:
        body = r.json()
    except ValueError:
        return r.text[:200]
    if isinstance(body, dict):
        return str(body.get("error") or body.get("message") or body.get("title") or body)[:200]
    return str(body)[:200]
