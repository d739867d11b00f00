"""Shared fixtures: an in-memory NuGet v3 feed over a fake HTTP session."""

import pytest
import requests

from feedpush.services.session import PublishSession


class FakeResponse:
    def __init__(self, status_code=200, json_data=None, reason="OK"):
        self.status_code = status_code
        self._json = json_data
        self.reason = reason

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        if self._json is None:
            raise ValueError("No JSON body")
        return self._json

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} {self.reason}", response=self)


class FakeFeedHttp:
    """
    Stand-in for requests.Session serving NuGet v3 feeds.

    Every */v3/index.json url is a feed whose flat container is
    <root>/flat/ and publish endpoint <root>/publish. `packages` maps
    lowercase ids to their published versions for all feeds.
    """

    def __init__(self, packages=None, push_status=201, promote_status=200):
        self.packages = {k.lower(): list(v) for k, v in (packages or {}).items()}
        self.push_status = push_status
        self.promote_status = promote_status
        self.calls = []
        self.closed = False

    @staticmethod
    def root(index_url):
        return index_url[:-len('/v3/index.json')]

    def get(self, url, headers=None, timeout=None, auth=None, **kwargs):
        self.calls.append(('GET', url, {'headers': headers, 'timeout': timeout, 'auth': auth}))
        if url.endswith('/v3/index.json'):
            root = self.root(url)
            return FakeResponse(json_data={
                'version': '3.0.0',
                'resources': [
                    {'@id': f'{root}/flat/', '@type': 'PackageBaseAddress/3.0.0'},
                    {'@id': f'{root}/publish', '@type': 'PackagePublish/2.0.0'},
                ],
            })
        if '/flat/' in url and url.endswith('/index.json'):
            package_id = url.split('/flat/')[1].split('/')[0]
            if package_id not in self.packages:
                return FakeResponse(404, reason="Not Found")
            return FakeResponse(json_data={'versions': self.packages[package_id]})
        return FakeResponse(404, reason="Not Found")

    def put(self, url, files=None, headers=None, timeout=None, auth=None, **kwargs):
        name = files['package'][0] if files else None
        self.calls.append(('PUT', url, {'headers': headers, 'timeout': timeout, 'file': name, 'auth': auth}))
        return FakeResponse(self.push_status, reason="Created" if self.push_status < 300 else "Error")

    def post(self, url, json=None, headers=None, timeout=None, **kwargs):
        self.calls.append(('POST', url, {'headers': headers, 'timeout': timeout, 'json': json}))
        return FakeResponse(self.promote_status, reason="OK" if self.promote_status < 300 else "Forbidden")

    def close(self):
        self.closed = True

    def methods(self):
        return [c[0] for c in self.calls]

    def calls_of(self, method):
        return [c for c in self.calls if c[0] == method]


@pytest.fixture
def fake_http():
    return FakeFeedHttp()


@pytest.fixture
def environ():
    return {}


@pytest.fixture
def session(fake_http, environ):
    return PublishSession(http=fake_http, environ=environ, interactive=False)


@pytest.fixture
def output_dir(tmp_path):
    out = tmp_path / "releases"
    out.mkdir()
    return out


@pytest.fixture
def write_package(output_dir):
    """Create a package file in the output directory."""
    def write(name, version, extension='nupkg'):
        path = output_dir / f"{name}.{version}.{extension}"
        path.write_bytes(f"package {name} {version}".encode())
        return path
    return write
