"""
Pytest configuration file.

Sets up the Python path so test files can import from the python/ directory,
and provides an in-memory registry that answers through a requests-like session.
"""
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import urlsplit

import pytest
from requests.structures import CaseInsensitiveDict

# Add python directory to path for all tests
_python_dir = Path(__file__).parent.parent / 'python'
_python_dir_abs = str(_python_dir.absolute())
if _python_dir_abs not in sys.path:
    sys.path.insert(0, _python_dir_abs)


class FakeResponse:
    """Minimal stand-in for requests.Response"""

    def __init__(self, status_code: int = 200, json_data=None, headers: Optional[Dict[str, str]] = None,
                 text: str = ""):
        self.status_code = status_code
        self._json = json_data
        self.headers = CaseInsensitiveDict(headers or {})
        self.text = text

    def json(self):
        if self._json is None:
            raise ValueError("No JSON body")
        return self._json


class FakeRegistry:
    """In-memory Registry v2 answering GET and DELETE like a requests.Session.

    `repositories` maps repository name to {tag: digest}. Every request is
    recorded in `calls` as (method, path).
    """

    def __init__(self, repositories: Optional[Dict[str, Dict[str, str]]] = None):
        self.repositories = {name: dict(tags) for name, tags in (repositories or {}).items()}
        self.calls: List[tuple] = []
        self.delete_status: Optional[int] = None

    def request(self, method, url, headers=None, timeout=None, verify=True):
        path = urlsplit(url).path
        self.calls.append((method, path))

        if path == "/v2/":
            return FakeResponse(200, {}, {"Docker-Distribution-Api-Version": "registry/2.0"})

        if path == "/v2/_catalog":
            return FakeResponse(200, {"repositories": list(self.repositories)})

        rest = path[len("/v2/"):]
        if rest.endswith("/tags/list"):
            name = rest[: -len("/tags/list")]
            if name not in self.repositories:
                return FakeResponse(404, {"errors": [{"code": "NAME_UNKNOWN"}]})
            tags = list(self.repositories[name]) or None
            return FakeResponse(200, {"name": name, "tags": tags})

        name, _, reference = rest.rpartition("/manifests/")
        tags = self.repositories.get(name, {})
        if method == "GET":
            if reference in tags:
                return FakeResponse(200, {}, {"Docker-Content-Digest": tags[reference]})
            return FakeResponse(404, {"errors": [{"code": "MANIFEST_UNKNOWN"}]})

        if method == "DELETE":
            if self.delete_status is not None:
                return FakeResponse(self.delete_status, text="delete failed")
            matching = [tag for tag, digest in tags.items() if digest == reference]
            if not matching:
                return FakeResponse(404, text="manifest unknown")
            for tag in matching:
                del tags[tag]
            return FakeResponse(202)

        return FakeResponse(405, text="method not allowed")

    def mutating_calls(self) -> List[tuple]:
        return [call for call in self.calls if call[0] != "GET"]


@pytest.fixture(autouse=True)
def skip_config_validation():
    """Keep the shared ConfigManager from validating the developer's own config"""
    previous = os.environ.get("SKIP_CONFIG_VALIDATION")
    os.environ["SKIP_CONFIG_VALIDATION"] = "true"
    yield
    if previous is None:
        os.environ.pop("SKIP_CONFIG_VALIDATION", None)
    else:
        os.environ["SKIP_CONFIG_VALIDATION"] = previous


@pytest.fixture
def fake_registry():
    """Registry with svc:v1 and svc:v2 sharing sha256:AAA and a sole app:1.0"""
    return FakeRegistry({
        "svc": {"v1": "sha256:AAA", "v2": "sha256:AAA"},
        "team/app": {"1.0": "sha256:CCC"},
    })


@pytest.fixture
def registry_client(fake_registry):
    from registry_cli.registry_client import RegistryClient

    return RegistryClient("http://localhost:5000", session=fake_registry)
