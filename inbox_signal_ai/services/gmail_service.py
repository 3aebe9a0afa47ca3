"""Gmail REST client: lists matching message ids and fetches message content."""

import asyncio
from typing import Any, Dict, List, Optional

import httpx

from ..config import (
    GMAIL_CLIENT_ID,
    GMAIL_CLIENT_SECRET,
    GMAIL_PAGE_SIZE,
    GMAIL_REFRESH_TOKEN,
    HTTP_TIMEOUT_SECONDS,
)
from ..errors import FetchError, ListingError
from ..schemas.mail_message import MailMessage
from ..utils.helpers import extract_body, header_value
from ..utils.logger import get_logger
from .interfaces import MailLister, MessageFetcher

logger = get_logger(__name__)

GMAIL_API_BASE = "https://gmail.googleapis.com/gmail/v1/users/me"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"


def parse_gmail_message(data: Dict[str, Any]) -> MailMessage:
    """Build a MailMessage from a `format=full` Gmail message resource."""
    payload = data.get("payload") or {}
    headers = payload.get("headers") or []
    return MailMessage(
        id=str(data.get("id", "")),
        subject=header_value(headers, "Subject"),
        sender=header_value(headers, "From"),
        snippet=data.get("snippet") or "",
        body=extract_body(payload),
        received_at=header_value(headers, "Date") or None,
    )


class GmailService(MailLister, MessageFetcher):
    """
    Talks to the Gmail API with an OAuth access token obtained from a refresh token.
    Pass `access_token` to skip the refresh, `transport` to route requests (tests).
    """

    def __init__(
        self,
        refresh_token: str = GMAIL_REFRESH_TOKEN,
        client_id: str = GMAIL_CLIENT_ID,
        client_secret: str = GMAIL_CLIENT_SECRET,
        access_token: Optional[str] = None,
        page_size: int = GMAIL_PAGE_SIZE,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._refresh_token = refresh_token
        self._client_id = client_id
        self._client_secret = client_secret
        self._access_token = access_token
        self._page_size = page_size
        self._transport = transport
        self._token_lock = asyncio.Lock()

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS, transport=self._transport)

    async def _refresh_access_token(self) -> str:
        if not self._refresh_token:
            raise ListingError("auth_error", "No Gmail refresh token configured")
        form = {
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "refresh_token": self._refresh_token,
            "grant_type": "refresh_token",
        }
        try:
            async with self._client() as client:
                response = await client.post(GOOGLE_TOKEN_URL, data=form)
                response.raise_for_status()
                token = response.json().get("access_token")
        except httpx.HTTPError as e:
            logger.error("Gmail token refresh failed: %s", e)
            raise ListingError("auth_error", "Failed to initialize Gmail service") from e
        if not token:
            raise ListingError("auth_error", "Token endpoint returned no access_token")
        return token

    async def _token(self, force_refresh: bool = False) -> str:
        async with self._token_lock:
            if force_refresh or not self._access_token:
                self._access_token = await self._refresh_access_token()
            return self._access_token

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """GET against the Gmail API; refreshes the token once on 401."""
        url = f"{GMAIL_API_BASE}/{path}"
        token = await self._token()
        async with self._client() as client:
            response = await client.get(url, params=params, headers={"Authorization": f"Bearer {token}"})
            if response.status_code == 401 and self._refresh_token:
                logger.info("Gmail access token rejected; refreshing")
                token = await self._token(force_refresh=True)
                response = await client.get(url, params=params, headers={"Authorization": f"Bearer {token}"})
            response.raise_for_status()
            return response.json()

    async def list_message_ids(self, query: str, max_results: Optional[int] = None) -> List[str]:
        params = {"q": query, "maxResults": max_results or self._page_size}
        try:
            data = await self._get("messages", params)
        except httpx.HTTPStatusError as e:
            logger.error("Gmail API error %s: %s", e.response.status_code, e.response.text)
            raise ListingError("GMAIL_API_ERROR", f"Failed to fetch emails from Gmail: {e}") from e
        except httpx.HTTPError as e:
            logger.error("Gmail API request failed: %s", e)
            raise ListingError("GMAIL_API_ERROR", f"Failed to fetch emails from Gmail: {e}") from e

        ids = [str(m["id"]) for m in data.get("messages") or [] if m.get("id")]
        if not ids:
            logger.warning("No messages found for query %r", query)
        else:
            logger.info("Found %s messages for query %r", len(ids), query)
        return ids

    async def fetch_message(self, message_id: str) -> MailMessage:
        try:
            data = await self._get(f"messages/{message_id}", {"format": "full"})
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise FetchError(f"message {message_id} not found") from e
            raise FetchError(f"Gmail error {e.response.status_code} for {message_id}") from e
        except (httpx.HTTPError, ListingError) as e:
            raise FetchError(f"failed to fetch {message_id}: {e}") from e
        return parse_gmail_message(data)
