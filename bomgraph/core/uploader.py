import logging
import posixpath
from dataclasses import dataclass
from typing import Optional, Dict, Any
from urllib.parse import urlsplit, urlunsplit

import httpx

from bomgraph.core.errors import UploadError

TIMEOUT = 45.0


@dataclass
class Project:
    name: str
    version: str
    last_bom_import: int = 0


class DependencyTrackClient:
    """
    Async client for the parts of the Dependency-Track REST API used to
    publish a BOM.
    """

    def __init__(self, api: str, secret: str, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        parts = urlsplit(api)
        if not parts.scheme:
            raise UploadError("cannot use relative URL as the Dependency-Track API location")
        if parts.scheme not in ("http", "https"):
            raise UploadError(f"unsupported URI scheme '{parts.scheme}'")

        self.base_url = urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
        self.secret = secret
        self._transport = transport

    def url(self, target: str) -> str:
        parts = urlsplit(self.base_url)
        path = posixpath.join(parts.path or "/", target)
        return urlunsplit((parts.scheme, parts.netloc, path, "", ""))

    async def upload(self, bom: bytes, project: str = "", version: str = "", uuid: str = "") -> str:
        """Posts a BOM document and returns the server's processing token."""
        data = {"autoCreate": "true"}
        if project:
            data["projectName"] = project
        if version:
            data["projectVersion"] = version
        if uuid:
            data["project"] = uuid

        logging.info(f"Uploading {len(bom)} bytes to {self.base_url}")
        response = await self._request(
            "POST",
            "api/v1/bom",
            data=data,
            files={"bom": ("bom.xml", bom, "application/xml")},
        )
        return self._json(response).get("token", "")

    async def version(self) -> str:
        response = await self._request("GET", "api/version", authenticated=False)
        return self._json(response).get("version", "")

    async def lookup(self, project: str, version: str) -> Project:
        response = await self._request(
            "GET", "api/v1/project/lookup", params={"name": project, "version": version}
        )
        return self._project(self._json(response))

    async def get_project(self, uuid: str) -> Project:
        response = await self._request("GET", f"api/v1/project/{uuid}")
        return self._project(self._json(response))

    async def _request(self, method: str, target: str, authenticated: bool = True, **kwargs) -> httpx.Response:
        headers = {"X-Api-Key": self.secret} if authenticated else {}
        try:
            async with httpx.AsyncClient(timeout=TIMEOUT, transport=self._transport) as client:
                response = await client.request(method, self.url(target), headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise UploadError(f"request to {self.url(target)} failed: {e}") from e

        if response.status_code > 299:
            raise UploadError(
                f"error response from server: {response.status_code} {response.reason_phrase} -- {response.text}"
            )
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise UploadError(f"unexpected response from server: {response.text}") from e
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _project(data: Dict[str, Any]) -> Project:
        return Project(
            name=data.get("name", ""),
            version=data.get("version", ""),
            last_bom_import=data.get("lastBomImport", 0),
        )
