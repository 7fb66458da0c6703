"""
Remote Object Store
===================

Versioned key-value access to one repository/branch through the host's
contents API. Every object carries a revision token (the blob sha); writes
and deletes that name a stale token are rejected by the host.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from ghvault.utils.config import Session, StoreConfig
from ghvault.utils.dataModels import RemoteObject
from ghvault.utils.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ObjectTooLargeError,
    StoreError,
    TransientError,
)

logger = logging.getLogger(__name__)

ACCEPT_JSON = "application/vnd.github+json"
ACCEPT_RAW = "application/vnd.github.raw+json"


class RemoteStore:
    """
    Async client for the blob host's contents API.

    Features:
    - get / put / delete with revision tokens (optimistic concurrency)
    - directory listing and recursive tree walk
    - repository reachability check

    The httpx client is injectable so tests can route requests to an
    in-memory host with ``httpx.MockTransport``.
    """

    def __init__(
        self,
        config: StoreConfig,
        session: Session,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config
        self.session = session
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "RemoteStore":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # =========================================================================
    # HTTP plumbing
    # =========================================================================

    def _headers(self, accept: str = ACCEPT_JSON) -> Dict[str, str]:
        headers = {"Accept": accept, "X-GitHub-Api-Version": "2022-11-28"}
        if self.session.bearer_token:
            headers["Authorization"] = f"Bearer {self.session.bearer_token}"
        return headers

    def _contents_url(self, path: str) -> str:
        return f"{self.config.repo_url}/contents/{quote(path.strip('/'), safe='/')}"

    async def _request(
        self,
        method: str,
        url: str,
        path: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
        accept: str = ACCEPT_JSON,
    ) -> httpx.Response:
        logger.debug(f"RemoteStore: {method} {path or '/'}")
        try:
            return await self._client.request(
                method,
                url,
                headers=self._headers(accept),
                params=params,
                json=json,
                timeout=self.config.timeout,
            )
        except httpx.TimeoutException as e:
            raise TransientError(f"{method} {path} timed out after {self.config.timeout}s", path=path) from e
        except httpx.TransportError as e:
            raise TransientError(f"{method} {path} failed: {e}", path=path) from e
        except httpx.DecodingError as e:
            raise TransientError(f"{method} {path}: corrupt response body: {e}", path=path) from e
        except httpx.RequestError as e:
            raise StoreError(f"{method} {path} failed: {e}", path=path) from e

    @staticmethod
    def _json(resp: httpx.Response, op: str, path: str) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise StoreError(f"{op} {path or '/'}: malformed response: {e}", status=resp.status_code, path=path) from e

    @staticmethod
    def _error_message(resp: httpx.Response) -> str:
        try:
            data = resp.json()
        except ValueError:
            return resp.text[:200] or resp.reason_phrase
        if isinstance(data, dict) and data.get("message"):
            return str(data["message"])
        return resp.reason_phrase

    def _raise_for_status(self, resp: httpx.Response, op: str, path: str) -> None:
        status = resp.status_code
        if status < 400:
            return
        msg = f"{op} {path or '/'}: HTTP {status} {self._error_message(resp)}"
        if status in (401, 403):
            raise AuthorizationError(msg, status=status, path=path)
        if status == 404:
            raise NotFoundError(msg, status=status, path=path)
        if status == 409:
            raise ConflictError(msg, status=status, path=path)
        if status == 422 and op == "put":
            # host refuses a write that omits the sha of an existing object
            raise ConflictError(msg, status=status, path=path)
        if status == 429 or status >= 500:
            raise TransientError(msg, status=status, path=path)
        raise StoreError(msg, status=status, path=path)

    @staticmethod
    def _summary(entry: Dict[str, Any]) -> RemoteObject:
        return RemoteObject(
            path=entry["path"],
            name=entry.get("name") or entry["path"].rsplit("/", 1)[-1],
            size=int(entry.get("size") or 0),
            revision=entry.get("sha"),
            kind="dir" if entry.get("type") == "dir" else "file",
            download_url=entry.get("download_url"),
        )

    # =========================================================================
    # Repository
    # =========================================================================

    async def verify_repository(self) -> Dict[str, Any]:
        """Check the repository is reachable with the session credential."""
        resp = await self._request("GET", self.config.repo_url, "")
        self._raise_for_status(resp, "verify", f"{self.config.owner}/{self.config.repo_name}")
        return self._json(resp, "verify", "")

    # =========================================================================
    # Object Operations
    # =========================================================================

    async def get(self, path: str) -> Optional[RemoteObject]:
        """Fetch an object and its revision token. Missing objects return None."""
        url = self._contents_url(path)
        params = {"ref": self.config.branch}
        resp = await self._request("GET", url, path, params=params)
        if resp.status_code == 404:
            return None
        self._raise_for_status(resp, "get", path)

        data = self._json(resp, "get", path)
        if not isinstance(data, dict) or data.get("type") != "file":
            raise StoreError(f"get {path}: not a file", path=path)

        obj = self._summary(data)
        encoded = data.get("content") or ""
        if data.get("encoding") == "base64" and (encoded or obj.size == 0):
            try:
                obj.content = base64.b64decode(encoded)
            except (binascii.Error, ValueError) as e:
                raise StoreError(f"get {path}: undecodable content: {e}", path=path) from e
        else:
            # objects over 1 MB come back without inline content
            raw = await self._request("GET", url, path, params=params, accept=ACCEPT_RAW)
            self._raise_for_status(raw, "get", path)
            obj.content = raw.content
        return obj

    async def put(
        self,
        path: str,
        content: bytes,
        message: str,
        expected_revision: Optional[str] = None,
        *,
        must_not_exist: bool = False,
    ) -> RemoteObject:
        """
        Create or overwrite an object.

        Args:
            path: Object path in the repository
            content: Raw bytes to store
            message: Commit message
            expected_revision: Token of the content being replaced. The host
                rejects the write with ConflictError when it is stale.
            must_not_exist: Send no token so the host rejects the write when
                the path already exists. Used for fresh upload paths.

        Without either, the write is a blind overwrite of whatever is there.
        """
        if len(content) > self.config.max_object_size:
            raise ObjectTooLargeError(
                f"put {path}: {len(content)} bytes exceeds the {self.config.max_object_size}-byte limit",
                path=path,
            )

        revision = expected_revision
        if revision is None and not must_not_exist:
            current = await self.get(path)
            revision = current.revision if current else None

        body = {
            "message": message,
            "content": base64.b64encode(content).decode("ascii"),
            "branch": self.config.branch,
        }
        if revision:
            body["sha"] = revision

        resp = await self._request("PUT", self._contents_url(path), path, json=body)
        self._raise_for_status(resp, "put", path)

        data = self._json(resp, "put", path)
        try:
            obj = self._summary(data["content"])
        except (KeyError, TypeError) as e:
            raise StoreError(f"put {path}: response has no content entry", status=resp.status_code, path=path) from e
        obj.content = content
        logger.info(f"RemoteStore: stored {path} ({len(content)} bytes) at {obj.revision}")
        return obj

    async def delete(self, path: str, message: str, expected_revision: str) -> None:
        """Delete an object. Stale token -> ConflictError, absent -> NotFoundError."""
        body = {"message": message, "sha": expected_revision, "branch": self.config.branch}
        resp = await self._request("DELETE", self._contents_url(path), path, json=body)
        self._raise_for_status(resp, "delete", path)
        logger.info(f"RemoteStore: deleted {path}")

    async def list(self, directory: str = "") -> List[RemoteObject]:
        """List a directory. A directory that does not exist yet is empty."""
        path = directory.strip("/")
        url = self._contents_url(path) if path else f"{self.config.repo_url}/contents"
        resp = await self._request("GET", url, path, params={"ref": self.config.branch})
        if resp.status_code == 404:
            return []
        self._raise_for_status(resp, "list", path)

        data = self._json(resp, "list", path)
        if not isinstance(data, list):
            raise StoreError(f"list {path}: not a directory", path=path)
        return [self._summary(e) for e in data if e.get("type") in ("file", "dir")]

    async def tree(self, directory: str = "") -> List[RemoteObject]:
        """All files below `directory`, descending into sub-directories."""
        files: List[RemoteObject] = []
        for entry in await self.list(directory):
            if entry.kind == "dir":
                files.extend(await self.tree(entry.path))
            else:
                files.append(entry)
        return files


__all__ = [
    "RemoteStore",
]
