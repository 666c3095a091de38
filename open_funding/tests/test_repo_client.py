"""
Unit tests for open_funding/ingestion/repo_client.py

All tests are fully offline: urllib.request.urlopen is patched. Covers URL
parsing, manifest/contributor/funding parsers, and the client's
try-the-next-candidate behaviour on GitHub and GitLab.
"""

import base64
import io
import json
import urllib.error
from unittest.mock import patch

import pytest

from open_funding.config import OpenFundingConfig
from open_funding.ingestion.repo_client import (
    RepositoryHostClient,
    dependencies_with_uniform_weights,
    parse_cargo_toml,
    parse_contributors_file,
    parse_funding_file,
    parse_package_json,
    parse_repository_url,
    parse_requirements_txt,
)

# No throttling in tests.
FAST_CONFIG = OpenFundingConfig(github_rate_limit_per_hr=10**9)


# ---------------------------------------------------------------------------
# URL helpers
# ---------------------------------------------------------------------------

def test_parse_github_url():
    ref = parse_repository_url("https://github.com/Emurgo/cardano-serialization-lib.git")
    assert ref.platform == "github"
    assert ref.owner == "Emurgo"
    assert ref.repo == "cardano-serialization-lib"
    assert ref.api_base == "https://api.github.com"


def test_parse_gitlab_nested_namespace():
    ref = parse_repository_url("gitlab.com/group/sub/project")
    assert ref.platform == "gitlab"
    assert ref.path == "group/sub/project"
    assert ref.api_base == "https://gitlab.com/api/v4"


def test_parse_self_hosted_gitlab():
    ref = parse_repository_url("https://git.example.org/team/tool")
    assert ref.api_base == "https://git.example.org/api/v4"


@pytest.mark.parametrize("url", ["", "https://github.com/only-owner", "not a url"])
def test_parse_rejects(url):
    assert parse_repository_url(url) is None


def test_non_github_host_is_treated_as_gitlab():
    ref = parse_repository_url("https://gitlab.com/a/b")
    assert ref.platform == "gitlab"
    assert ref.api_base == "https://gitlab.com/api/v4"


# ---------------------------------------------------------------------------
# Parsers
# ---------------------------------------------------------------------------

def test_parse_package_json():
    content = json.dumps(
        {"dependencies": {"react": "^18", "lodash": "4"}, "devDependencies": {"jest": "29", "react": "18"}}
    )
    assert parse_package_json(content) == ["react", "lodash", "jest"]


def test_parse_package_json_invalid():
    assert parse_package_json("{nope") == []
    assert parse_package_json("[1, 2]") == []


def test_parse_requirements_txt():
    content = "\n".join(
        [
            "# comment",
            "requests>=2.0",
            "",
            "-r base.txt",
            "pandas[excel]==2.1 ; python_version > '3.9'",
            "networkx  # graphs",
        ]
    )
    assert parse_requirements_txt(content) == ["requests", "pandas", "networkx"]


def test_parse_cargo_toml():
    content = '[package]\nname = "x"\n\n[dependencies]\nserde = "1"\ntokio = { version = "1" }\n'
    assert parse_cargo_toml(content) == ["serde", "tokio"]
    assert parse_cargo_toml("not = [toml") == []


def test_parse_contributors_skips_invalid():
    content = json.dumps(
        [
            {"name": "alice", "cardano_address": "addr1qa", "percentage": 60},
            {"name": "bob", "percentage": 40},
        ]
    )
    contributors = parse_contributors_file(content)
    assert [c.name for c in contributors] == ["alice"]


def test_parse_funding_file():
    info = parse_funding_file("Cardano: addr1qfund\nmaintainer: alice\nmaintainer: bob\nnoise\n")
    assert info.funding_address == "addr1qfund"
    assert info.maintainers == ["alice", "bob"]


def test_uniform_weights():
    deps = dependencies_with_uniform_weights(["a", "b"])
    assert [(d.name, d.weight) for d in deps] == [("a", 1), ("b", 1)]


# ---------------------------------------------------------------------------
# Client (urlopen patched)
# ---------------------------------------------------------------------------

class _FakeResponse(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


def _fake_urlopen(routes):
    """urlopen replacement serving bodies by URL; unknown URLs raise HTTP 404."""

    def fake(req, timeout=None):
        url = req.full_url
        if url not in routes:
            raise urllib.error.HTTPError(url, 404, "Not Found", {}, None)
        body = routes[url]
        if not isinstance(body, bytes):
            body = json.dumps(body).encode()
        return _FakeResponse(body)

    return fake


def _github_file(text):
    return {"encoding": "base64", "content": base64.b64encode(text.encode()).decode()}


def test_client_rate_limit_interval():
    client = RepositoryHostClient(config=OpenFundingConfig(github_rate_limit_per_hr=3600))
    assert abs(client._min_interval - 1.0) < 1e-9


def test_github_dependencies_first_manifest_wins():
    ref = parse_repository_url("https://github.com/o/r", FAST_CONFIG)
    api = "https://api.github.com/repos/o/r"
    routes = {
        f"{api}/contents": [{"name": "README.md"}, {"name": "requirements.txt"}, {"name": "Cargo.toml"}],
        f"{api}/contents/requirements.txt": _github_file("requests\nnetworkx\n"),
        f"{api}/contents/Cargo.toml": _github_file('[dependencies]\nserde = "1"\n'),
    }
    client = RepositoryHostClient(github_token="t", config=FAST_CONFIG)
    with patch("urllib.request.urlopen", side_effect=_fake_urlopen(routes)) as mock_open:
        assert client.get_dependencies(ref) == ["requests", "networkx"]
    first_request = mock_open.call_args_list[0].args[0]
    assert first_request.get_header("Authorization") == "token t"


def test_github_falls_through_unreadable_manifest():
    ref = parse_repository_url("https://github.com/o/r", FAST_CONFIG)
    api = "https://api.github.com/repos/o/r"
    routes = {
        f"{api}/contents": [{"name": "package.json"}, {"name": "Cargo.toml"}],
        f"{api}/contents/Cargo.toml": _github_file('[dependencies]\nserde = "1"\n'),
    }
    client = RepositoryHostClient(config=FAST_CONFIG)
    with patch("urllib.request.urlopen", side_effect=_fake_urlopen(routes)):
        assert client.get_dependencies(ref) == ["serde"]


def test_gitlab_contributors_and_funding():
    ref = parse_repository_url("https://gitlab.com/group/proj", FAST_CONFIG)
    api = "https://gitlab.com/api/v4/projects/group%2Fproj"
    contributors = [{"name": "alice", "cardano_address": "addr1qa", "percentage": 100}]
    routes = {
        f"{api}/repository/tree": [{"name": "contributors.txt"}, {"name": "funding.txt"}],
        f"{api}/repository/files/contributors.txt/raw": json.dumps(contributors).encode(),
        f"{api}/repository/files/funding.txt/raw": b"cardano: addr1qfund\n",
    }
    client = RepositoryHostClient(gitlab_token="g", config=FAST_CONFIG)
    with patch("urllib.request.urlopen", side_effect=_fake_urlopen(routes)) as mock_open:
        assert [c.name for c in client.get_contributors(ref)] == ["alice"]
        assert client.get_funding_info(ref).funding_address == "addr1qfund"
    assert mock_open.call_args_list[0].args[0].get_header("Authorization") == "Bearer g"


def test_network_error_degrades_to_empty():
    ref = parse_repository_url("https://github.com/o/r", FAST_CONFIG)
    client = RepositoryHostClient(config=FAST_CONFIG)
    with patch("urllib.request.urlopen", side_effect=urllib.error.URLError("offline")):
        assert client.list_files(ref) is None
        assert client.get_dependencies(ref) == []
        assert client.get_contributors(ref) == []
        assert client.get_funding_info(ref).funding_address is None


@pytest.mark.integration
def test_real_github_dependencies(github_token):
    """Hits the live GitHub API; run with --run-integration."""
    client = RepositoryHostClient(github_token=github_token)
    ref = parse_repository_url("https://github.com/MeshJS/mesh")
    assert isinstance(client.get_dependencies(ref), list)
