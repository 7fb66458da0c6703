"""
Shared fixtures: an in-memory stand-in for the contents API served through
httpx.MockTransport, plus store/index/orchestrator wired to it.
"""

import base64
import hashlib
import json

import httpx
import pytest
import pytest_asyncio

from ghvault.storage.index import MetadataIndex
from ghvault.storage.remote import RemoteStore
from ghvault.utils.config import Session, StoreConfig
from ghvault.utils.core import TransferOrchestrator

OWNER = "octo"
REPO = "vault"
TOKEN = "test-token"
BASE_URL = "https://api.test"


def git_sha(content: bytes) -> str:
    return hashlib.sha1(b"blob %d\0" % len(content) + content).hexdigest()


class FakeContentHost:
    """Files keyed by path with git-style shas and the host's concurrency rules."""

    def __init__(self, token: str = TOKEN, inline_limit: int = 1024 * 1024):
        self.token = token
        self.inline_limit = inline_limit
        self.files: dict[str, bytes] = {}
        self.requests: list[httpx.Request] = []
        self._faults: list[tuple[str, str | None, object, bool]] = []

    # -- test controls ------------------------------------------------------

    def seed(self, path: str, content: bytes) -> str:
        self.files[path] = content
        return git_sha(content)

    def sha(self, path: str) -> str:
        return git_sha(self.files[path])

    def fail_next(self, method: str, path: str | None = None, *, status: int | None = None,
                  exc: type | None = None, after: bool = False) -> None:
        """Queue one fault for the next matching request.

        `after=True` applies the request first and then loses the response.
        """
        self._faults.append((method, path, status or exc, after))

    def count(self, method: str, path: str | None = None) -> int:
        return sum(
            1 for r in self.requests
            if r.method == method and (path is None or self._path(r) == path)
        )

    # -- transport ----------------------------------------------------------

    @staticmethod
    def _path(request: httpx.Request) -> str | None:
        prefix = f"/repos/{OWNER}/{REPO}/contents"
        p = request.url.path
        if not p.startswith(prefix):
            return None
        return p[len(prefix):].strip("/")

    def _take_fault(self, request: httpx.Request, path: str | None):
        for i, (method, fpath, what, after) in enumerate(self._faults):
            if method == request.method and (fpath is None or fpath == path):
                del self._faults[i]
                return what, after
        return None, False

    @staticmethod
    def _fault_response(what, request: httpx.Request) -> httpx.Response:
        if isinstance(what, int):
            return httpx.Response(what, json={"message": f"injected {what}"})
        raise what("injected", request=request)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.headers.get("Authorization") != f"Bearer {self.token}":
            return httpx.Response(401, json={"message": "Bad credentials"})

        path = self._path(request)
        what, after = self._take_fault(request, path)
        if what is not None and not after:
            return self._fault_response(what, request)

        if path is None:
            if request.url.path == f"/repos/{OWNER}/{REPO}":
                response = httpx.Response(200, json={"full_name": f"{OWNER}/{REPO}", "default_branch": "main"})
            else:
                response = httpx.Response(404, json={"message": "Not Found"})
        elif request.method == "GET":
            response = self._get(request, path)
        elif request.method == "PUT":
            response = self._put(json.loads(request.content), path)
        elif request.method == "DELETE":
            response = self._delete(json.loads(request.content), path)
        else:
            response = httpx.Response(405)

        if what is not None:
            return self._fault_response(what, request)
        return response

    def _summary(self, path: str) -> dict:
        content = self.files[path]
        return {
            "type": "file",
            "name": path.rsplit("/", 1)[-1],
            "path": path,
            "sha": git_sha(content),
            "size": len(content),
            "download_url": f"https://raw.test/{OWNER}/{REPO}/main/{path}",
        }

    def _get(self, request: httpx.Request, path: str) -> httpx.Response:
        if path in self.files:
            content = self.files[path]
            if "raw" in request.headers.get("Accept", ""):
                return httpx.Response(200, content=content)
            body = self._summary(path)
            if len(content) > self.inline_limit:
                body.update(content="", encoding="none")
            else:
                encoded = base64.b64encode(content).decode()
                # the host wraps base64 at 60 columns
                body.update(content="\n".join(encoded[i:i + 60] for i in range(0, len(encoded), 60)),
                            encoding="base64")
            return httpx.Response(200, json=body)

        prefix = f"{path}/" if path else ""
        children: dict[str, dict] = {}
        for p in sorted(self.files):
            if not p.startswith(prefix):
                continue
            head, _, rest = p[len(prefix):].partition("/")
            if rest:
                children.setdefault(head, {"type": "dir", "name": head, "path": prefix + head,
                                           "sha": "0" * 40, "size": 0})
            else:
                children[head] = self._summary(p)
        if not children:
            return httpx.Response(404, json={"message": "Not Found"})
        return httpx.Response(200, json=list(children.values()))

    def _put(self, body: dict, path: str) -> httpx.Response:
        sha = body.get("sha")
        if path in self.files:
            if sha is None:
                return httpx.Response(422, json={"message": "Invalid request.\n\n\"sha\" wasn't supplied."})
            if sha != self.sha(path):
                return httpx.Response(409, json={"message": f"{path} does not match {sha}"})
            status = 200
        else:
            if sha is not None:
                return httpx.Response(409, json={"message": f"{path} does not match {sha}"})
            status = 201
        self.files[path] = base64.b64decode(body["content"])
        return httpx.Response(status, json={"content": self._summary(path), "commit": {"message": body["message"]}})

    def _delete(self, body: dict, path: str) -> httpx.Response:
        if path not in self.files:
            return httpx.Response(404, json={"message": "Not Found"})
        if body.get("sha") != self.sha(path):
            return httpx.Response(409, json={"message": f"{path} does not match {body.get('sha')}"})
        del self.files[path]
        return httpx.Response(200, json={"content": None, "commit": {"message": body["message"]}})


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def host():
    return FakeContentHost()


@pytest.fixture
def config():
    return StoreConfig(owner=OWNER, repo_name=REPO, base_url=BASE_URL, timeout=5.0)


@pytest.fixture
def session():
    return Session(user_type="admin", bearer_token=TOKEN)


@pytest_asyncio.fixture
async def store(host, config, session):
    client = httpx.AsyncClient(transport=httpx.MockTransport(host.handler))
    store = RemoteStore(config, session, client=client)
    yield store
    await client.aclose()


@pytest.fixture
def index(store):
    return MetadataIndex(store)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def orchestrator(store, index, session, sleeps):
    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    return TransferOrchestrator(store, index, session, sleep=fake_sleep)
