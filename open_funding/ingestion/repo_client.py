"""
GitHub/GitLab repository scraper for Cardano Open Funding.

Fetches a repository's top-level file tree, locates well-known files by name
and parses them best-effort:

    dependency manifests : package.json, requirements.txt, Cargo.toml
    contributors file    : contributors.txt (JSON array of maintainers with
                           Cardano addresses and percentage shares)
    funding file         : funding.txt / .funding / FUNDING.yml
                           ("cardano: addr1...", "maintainer: name" lines)

Candidates are tried in order and the first one that parses wins. Network
and HTTP failures are logged and degrade to None / [] so one broken
repository never aborts a batch.

Uses only Python stdlib (urllib.request).
"""
import base64
import json
import logging
import re
import time
import tomllib
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass, field
from typing import Callable, Optional

from open_funding.config import DEFAULT_CONFIG, OpenFundingConfig
from open_funding.models import Contributor, Dependency
from open_funding.validation import ValidationError, contributor_from_dict

logger = logging.getLogger(__name__)

_REQUIREMENT_NAME_RE = re.compile(r"^([A-Za-z0-9][A-Za-z0-9._-]*)")


@dataclass(frozen=True)
class RepositoryRef:
    """A parsed repository URL."""

    platform: str       # "github" | "gitlab"
    owner: str          # GitHub owner, or GitLab namespace (may contain "/")
    repo: str
    api_base: str

    @property
    def path(self) -> str:
        return f"{self.owner}/{self.repo}"


@dataclass
class FundingInfo:
    """Payout details published in a repository's funding file."""

    funding_address: Optional[str] = None
    maintainers: list[str] = field(default_factory=list)


# ── URL helpers ───────────────────────────────────────────────────────────────

def parse_repository_url(
    url: str,
    config: OpenFundingConfig = DEFAULT_CONFIG,
) -> Optional[RepositoryRef]:
    """
    Parse a repository URL into a RepositoryRef.

    GitHub URLs resolve to the GitHub REST API. Any other https host with at
    least two path segments is treated as a GitLab instance whose API lives at
    {origin}/api/v4 (self-hosted GitLab included). A trailing ".git" is dropped.

    Returns:
        RepositoryRef, or None if the URL cannot be interpreted.
    """
    if not url:
        return None
    url = url.strip()
    if "://" not in url:
        url = "https://" + url

    parsed = urllib.parse.urlparse(url)
    segments = [s for s in parsed.path.split("/") if s]
    if len(segments) < 2 or not parsed.netloc:
        return None
    segments[-1] = re.sub(r"\.git$", "", segments[-1])

    if parsed.netloc.endswith("github.com"):
        return RepositoryRef("github", segments[0], segments[1], config.github_api_base)

    origin = f"{parsed.scheme}://{parsed.netloc}"
    api_base = config.gitlab_api_base if parsed.netloc == "gitlab.com" else f"{origin}/api/v4"
    return RepositoryRef("gitlab", "/".join(segments[:-1]), segments[-1], api_base)


# ── Manifest parsers (pure) ───────────────────────────────────────────────────

def parse_package_json(content: str) -> list[str]:
    """Names from "dependencies" then "devDependencies" of a package.json."""
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        logger.warning("package.json is not valid JSON: %s", exc)
        return []
    if not isinstance(data, dict):
        return []
    names = list(data.get("dependencies") or {}) + list(data.get("devDependencies") or {})
    return list(dict.fromkeys(names))


def parse_requirements_txt(content: str) -> list[str]:
    """
    Distribution names from a pip requirements file.

    Comments, blank lines and option lines (-r, -e, --index-url ...) are
    skipped; version specifiers, extras and markers are stripped.
    """
    names: list[str] = []
    for raw_line in content.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if not line or line.startswith("-"):
            continue
        match = _REQUIREMENT_NAME_RE.match(line)
        if match:
            names.append(match.group(1))
    return list(dict.fromkeys(names))


def parse_cargo_toml(content: str) -> list[str]:
    """Crate names from the [dependencies] table of a Cargo.toml."""
    try:
        data = tomllib.loads(content)
    except tomllib.TOMLDecodeError as exc:
        logger.warning("Cargo.toml is not valid TOML: %s", exc)
        return []
    return list(data.get("dependencies", {}))


MANIFEST_PARSERS: dict[str, Callable[[str], list[str]]] = {
    "package.json": parse_package_json,
    "requirements.txt": parse_requirements_txt,
    "Cargo.toml": parse_cargo_toml,
}


def parse_contributors_file(content: str) -> list[Contributor]:
    """
    Contributors from a JSON array. Entries that fail validation are skipped
    with a warning; a file that is not a JSON array yields [].
    """
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        logger.warning("Contributors file is not valid JSON: %s", exc)
        return []
    if not isinstance(data, list):
        return []

    contributors: list[Contributor] = []
    for entry in data:
        try:
            contributors.append(contributor_from_dict(entry, "contributors file"))
        except ValidationError as exc:
            logger.warning("Skipping contributor entry: %s", exc)
    return contributors


def parse_funding_file(content: str) -> FundingInfo:
    """Read "cardano:"/"ada:" address lines and "maintainer:" lines."""
    info = FundingInfo()
    for raw_line in content.splitlines():
        key, sep, value = raw_line.partition(":")
        if not sep:
            continue
        key = key.strip().lower()
        value = value.strip()
        if key in ("cardano", "ada") and value:
            info.funding_address = value
        elif key == "maintainer" and value:
            info.maintainers.append(value)
    return info


def dependencies_with_uniform_weights(names: list[str]) -> list[Dependency]:
    """Dependency records with weight 1 each, for freshly scraped manifests."""
    return [Dependency(name=name, weight=1) for name in names]


# ── Client ────────────────────────────────────────────────────────────────────

class RepositoryHostClient:
    """Rate-limited client for the GitHub and GitLab REST APIs.

    Enforces a minimum interval between requests derived from the GitHub
    hourly limit. All errors are handled gracefully; methods return None or
    empty lists rather than raising exceptions.

    Args:
        github_token: Optional GitHub personal access token.
        gitlab_token: Optional GitLab token.
        config:       OpenFundingConfig (API bases, rate limit, file names).
    """

    def __init__(
        self,
        github_token: Optional[str] = None,
        gitlab_token: Optional[str] = None,
        config: OpenFundingConfig = DEFAULT_CONFIG,
    ) -> None:
        self._github_token = github_token
        self._gitlab_token = gitlab_token
        self._config = config
        self._min_interval = 3600.0 / config.github_rate_limit_per_hr
        self._last_call: float = 0.0

    def _headers(self, ref: RepositoryRef) -> dict[str, str]:
        if ref.platform == "github":
            headers = {"Accept": "application/vnd.github.v3+json"}
            if self._github_token:
                headers["Authorization"] = f"token {self._github_token}"
        else:
            headers = {"Accept": "application/json"}
            if self._gitlab_token:
                headers["Authorization"] = f"Bearer {self._gitlab_token}"
        return headers

    def _request(self, url: str, headers: dict[str, str]) -> Optional[bytes]:
        """Rate-limited GET. Returns the body, or None on any error."""
        now = time.monotonic()
        elapsed = now - self._last_call
        if elapsed < self._min_interval:
            time.sleep(self._min_interval - elapsed)
        self._last_call = time.monotonic()

        try:
            req = urllib.request.Request(url, headers=headers)
            with urllib.request.urlopen(req, timeout=self._config.request_timeout_s) as resp:
                return resp.read()
        except urllib.error.HTTPError as exc:
            if exc.code == 404:
                logger.debug("Not found: %s", url)
            else:
                logger.warning("HTTP %d error: %s", exc.code, url)
            return None
        except urllib.error.URLError as exc:
            logger.warning("Network error: %s - %s", exc.reason, url)
            return None
        except Exception as exc:  # noqa: BLE001
            logger.warning("Unexpected error for %s: %s", url, exc)
            return None

    def _get_json(self, url: str, ref: RepositoryRef):
        body = self._request(url, self._headers(ref))
        if body is None:
            return None
        try:
            return json.loads(body)
        except json.JSONDecodeError:
            logger.warning("Invalid JSON from %s", url)
            return None

    def _project_api(self, ref: RepositoryRef) -> str:
        if ref.platform == "github":
            return f"{ref.api_base}/repos/{ref.owner}/{ref.repo}"
        return f"{ref.api_base}/projects/{urllib.parse.quote(ref.path, safe='')}"

    def list_files(self, ref: RepositoryRef) -> Optional[list[str]]:
        """Top-level file names of the repository, or None if unavailable."""
        if ref.platform == "github":
            url = f"{self._project_api(ref)}/contents"
        else:
            url = f"{self._project_api(ref)}/repository/tree"
        data = self._get_json(url, ref)
        if not isinstance(data, list):
            return None
        return [entry.get("name", "") for entry in data if isinstance(entry, dict)]

    def fetch_file(self, ref: RepositoryRef, path: str) -> Optional[str]:
        """Decoded text content of a file, or None."""
        if ref.platform == "github":
            url = f"{self._project_api(ref)}/contents/{urllib.parse.quote(path)}"
            data = self._get_json(url, ref)
            if not isinstance(data, dict) or data.get("encoding") != "base64":
                return None
            try:
                return base64.b64decode(data.get("content", "")).decode("utf-8")
            except (ValueError, UnicodeDecodeError) as exc:
                logger.warning("Could not decode %s in %s: %s", path, ref.path, exc)
                return None

        url = (
            f"{self._project_api(ref)}/repository/files/"
            f"{urllib.parse.quote(path, safe='')}/raw"
        )
        body = self._request(url, self._headers(ref))
        if body is None:
            return None
        return body.decode("utf-8", errors="replace")

    def _candidates(self, ref: RepositoryRef, wanted: tuple[str, ...]) -> list[str]:
        """Wanted file names present in the repo, in wanted order.

        If the tree listing fails, every candidate is tried directly.
        """
        names = self.list_files(ref)
        if names is None:
            return list(wanted)
        present = set(names)
        return [name for name in wanted if name in present]

    def get_dependencies(self, ref: RepositoryRef) -> list[str]:
        """Dependency names from the first manifest found, else []."""
        for manifest in self._candidates(ref, self._config.manifest_files):
            content = self.fetch_file(ref, manifest)
            if content is None:
                continue
            names = MANIFEST_PARSERS[manifest](content)
            logger.info("%s: %d dependencies from %s", ref.path, len(names), manifest)
            return names
        logger.info("%s: no dependency manifest found", ref.path)
        return []

    def get_contributors(self, ref: RepositoryRef) -> list[Contributor]:
        """Contributors from the first parseable contributors file, else []."""
        for filename in self._candidates(ref, self._config.contributors_files):
            content = self.fetch_file(ref, filename)
            if content is None:
                continue
            contributors = parse_contributors_file(content)
            if contributors:
                return contributors
        return []

    def get_funding_info(self, ref: RepositoryRef) -> FundingInfo:
        """Funding details from the first funding file found, else empty."""
        for filename in self._candidates(ref, self._config.funding_files):
            content = self.fetch_file(ref, filename)
            if content is not None:
                return parse_funding_file(content)
        return FundingInfo()
