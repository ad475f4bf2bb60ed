"""
Wix Contacts Service

Thin wrapper around the Wix Contacts v4 REST API: query by email, create,
and partial update. Non-success responses are raised as WixAPIException
with the upstream status and body; nothing is retried here.
"""

from typing import Any, Dict, List, Optional

import httpx

from contact_sync.config import settings
from contact_sync.models.wix_records import DirectoryContact
from contact_sync.utils.exceptions import ConfigurationException, WixAPIException
from contact_sync.utils.logging_config import get_logger

logger = get_logger(__name__)


class WixService:
    """Service for interacting with the Wix Contacts REST API"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        site_id: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or settings.wix_api_key
        self.site_id = site_id or settings.wix_site_id
        self.contacts_url = (
            f"{base_url.rstrip('/')}/contacts/v4/contacts" if base_url else settings.wix_contacts_url
        )
        self.timeout = timeout or settings.wix_timeout
        self._transport = transport

    def _get_http_client(self) -> httpx.AsyncClient:
        """
        Create an httpx AsyncClient.
        A fresh client per call avoids reusing a closed event loop in Lambda.
        """
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def _get_headers(self) -> Dict[str, str]:
        """Bearer credential and site ID; never part of the payload"""
        if not self.api_key or not self.site_id:
            raise ConfigurationException(
                "Wix API key and site ID are required",
                details={"has_api_key": bool(self.api_key), "has_site_id": bool(self.site_id)},
            )
        return {
            "Authorization": f"Bearer {self.api_key}",
            "wix-site-id": self.site_id,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str = "",
        json_data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Make an authenticated request to the Wix Contacts API.

        Raises:
            WixAPIException: On any non-2xx response or network error
        """
        url = f"{self.contacts_url}{path}"
        headers = self._get_headers()

        async with self._get_http_client() as client:
            try:
                response = await client.request(
                    method=method,
                    url=url,
                    headers=headers,
                    json=json_data,
                )
            except httpx.RequestError as e:
                logger.error(f"Network error calling Wix API: {e}")
                raise WixAPIException(
                    f"Network error: {e}",
                    details={"error": str(e), "path": path or "/"},
                ) from e

        if response.status_code >= 400:
            try:
                error_body: Any = response.json()
            except ValueError:
                error_body = response.text

            logger.error(
                f"Wix API error: {response.status_code}",
                extra={
                    "status_code": response.status_code,
                    "method": method,
                    "path": path or "/",
                    "error": error_body,
                },
            )
            raise WixAPIException(
                f"Wix API error: {response.status_code}",
                status_code=response.status_code,
                body=error_body,
            )

        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    async def find_contacts_by_email(self, email: str, limit: int = 10) -> List[DirectoryContact]:
        """
        Query contacts whose email exactly matches ``email``.

        Returns contacts in the order Wix returns them.
        """
        query = {
            "query": {
                "filter": {"info.emails.email": {"$eq": email}},
                "paging": {"limit": limit},
            }
        }

        response = await self._request("POST", "/query", json_data=query)
        contacts = [DirectoryContact.from_wix(item) for item in response.get("contacts", [])]

        logger.info(
            f"Wix contact query returned {len(contacts)} contacts",
            extra={"email": email, "match_count": len(contacts)},
        )
        return contacts

    async def create_contact(self, info: Dict[str, Any]) -> DirectoryContact:
        """Create a contact from a Contacts v4 ``info`` object"""
        logger.info("Creating Wix contact")

        response = await self._request(
            "POST",
            json_data={"info": info, "allowDuplicates": False},
        )
        contact = DirectoryContact.from_wix(response["contact"])

        logger.info("Successfully created Wix contact", extra={"contact_id": contact.id})
        return contact

    async def update_contact(
        self,
        contact_id: str,
        info: Dict[str, Any],
        revision: Optional[int] = None,
    ) -> DirectoryContact:
        """
        Partially update a contact.

        Only the ``info`` sections present in ``info`` are replaced. When
        ``revision`` is given, Wix rejects the update if the contact changed
        in the meantime.
        """
        body: Dict[str, Any] = {"info": info}
        if revision is not None:
            body["revision"] = revision

        logger.info("Updating Wix contact", extra={"contact_id": contact_id})

        response = await self._request("PATCH", f"/{contact_id}", json_data=body)
        contact_data = response.get("contact") or {"id": contact_id}
        contact = DirectoryContact.from_wix(contact_data)

        logger.info("Successfully updated Wix contact", extra={"contact_id": contact_id})
        return contact


# Global Wix service instance
wix_service = WixService()
