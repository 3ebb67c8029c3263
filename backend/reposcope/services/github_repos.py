import base64
import binascii
import logging
from dataclasses import dataclass, field
from datetime import datetime

import httpx

from reposcope.config import settings
from reposcope.services.cache import ResponseCache, build_response_cache
from reposcope.services.errors import GatewayFailure
from reposcope.services.repository_store import RepositoryRecord


logger = logging.getLogger("reposcope.services.github")

PER_PAGE = 100
# Guards against a Link header that never ends.
MAX_PAGES = 1000


@dataclass
class StructureSummary:
    total_files: int = 0
    directories: list[str] = field(default_factory=list)
    file_types: dict[str, int] = field(default_factory=dict)


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _json_body(response, expected: type, what: str, details: dict | None = None):
    """Decode a GitHub response body, raising GatewayFailure unless it is JSON of the expected type."""
    try:
        data = response.json()
    except ValueError as exc:
        raise GatewayFailure(f"GitHub returned a non-JSON body for {what}", details=details) from exc
    if data is None:
        return expected()
    if not isinstance(data, expected):
        raise GatewayFailure(f"GitHub returned an unexpected body for {what}", details=details)
    return data


def repository_from_payload(data: dict) -> RepositoryRecord:
    full_name = data.get("full_name") or ""
    return RepositoryRecord(
        github_id=str(data.get("id")),
        name=data.get("name") or full_name.split("/")[-1],
        full_name=full_name,
        url=data.get("html_url") or f"https://github.com/{full_name}",
        description=data.get("description") or None,
        language=data.get("language") or None,
        is_private=bool(data.get("private", False)),
        stars=int(data.get("stargazers_count") or 0),
        forks=int(data.get("forks_count") or 0),
        size=int(data.get("size") or 0),
        default_branch=data.get("default_branch") or "main",
        last_commit_at=_parse_timestamp(data.get("pushed_at")),
        created_at=_parse_timestamp(data.get("created_at")),
        updated_at=_parse_timestamp(data.get("updated_at")),
    )


class GitHubGateway:
    """Read-only access to the GitHub REST API.

    Collections are fully paginated before they are returned. Repository
    listings, metadata and language stats go through the response cache.
    """

    def __init__(
        self,
        token: str | None = None,
        *,
        api_base: str | None = None,
        timeout: float | None = None,
        cache: ResponseCache | None = None,
    ) -> None:
        self.token = token
        self.api_base = str(api_base or settings.github_api_base).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.github_timeout_seconds
        self.cache = cache or ResponseCache(None, 0)

    def _headers(self) -> dict:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _get(self, client: httpx.Client, url: str, params: dict | None = None):
        try:
            return client.get(url, params=params, headers=self._headers())
        except httpx.HTTPError as exc:
            raise GatewayFailure("GitHub API is unreachable", details={"url": url}) from exc

    def list_repositories(self, username: str) -> list[RepositoryRecord]:
        payloads = self.cache.get_or_load(f"repos:{username}", lambda: self._fetch_repository_pages(username))
        return [repository_from_payload(item) for item in payloads]

    def _fetch_repository_pages(self, username: str) -> list[dict]:
        url: str | None = f"{self.api_base}/users/{username}/repos"
        params: dict | None = {"type": "all", "per_page": PER_PAGE, "sort": "updated"}
        items: list[dict] = []

        with httpx.Client(timeout=self.timeout) as client:
            for _ in range(MAX_PAGES):
                if url is None:
                    break
                response = self._get(client, url, params)
                if response.status_code == 404:
                    raise GatewayFailure(f"GitHub user {username} not found", details={"username": username})
                if response.status_code != 200:
                    raise GatewayFailure(
                        "Failed to list repositories",
                        details={"username": username, "status": response.status_code},
                    )
                page = _json_body(response, list, "repository listing", {"username": username})
                if not all(isinstance(item, dict) for item in page):
                    raise GatewayFailure(
                        "GitHub returned an unexpected body for repository listing",
                        details={"username": username},
                    )
                items.extend(page)
                # Next page URLs already carry the query string.
                url = (response.links or {}).get("next", {}).get("url")
                params = None

        if url is not None:
            logger.warning("github.list_repositories_truncated username=%s pages=%s count=%s", username, MAX_PAGES, len(items))
            raise GatewayFailure(
                "Repository listing did not finish paginating",
                details={"username": username, "max_pages": MAX_PAGES},
            )

        logger.info("github.list_repositories username=%s count=%s", username, len(items))
        return items

    def get_repository(self, owner: str, name: str) -> RepositoryRecord:
        def load() -> dict:
            with httpx.Client(timeout=self.timeout) as client:
                response = self._get(client, f"{self.api_base}/repos/{owner}/{name}")
            if response.status_code == 404:
                raise GatewayFailure("Repository not found on GitHub", details={"repository": f"{owner}/{name}"})
            if response.status_code != 200:
                raise GatewayFailure("Failed to fetch repository metadata", details={"status": response.status_code})
            return _json_body(response, dict, "repository metadata", {"repository": f"{owner}/{name}"})

        return repository_from_payload(self.cache.get_or_load(f"repo:{owner}/{name}", load))

    def get_file_content(self, owner: str, repo: str, path: str) -> str:
        """Return the decoded file body, or an empty string when the file does not exist."""
        with httpx.Client(timeout=self.timeout) as client:
            response = self._get(client, f"{self.api_base}/repos/{owner}/{repo}/contents/{path}")

        if response.status_code == 404:
            return ""
        if response.status_code != 200:
            raise GatewayFailure("Failed to fetch file content", details={"path": path, "status": response.status_code})

        data = _json_body(response, dict, "file content", {"path": path})
        if data.get("type", "file") != "file":
            raise GatewayFailure("Path is not a file", details={"path": path})

        content = data.get("content") or ""
        if data.get("encoding") == "base64":
            try:
                return base64.b64decode(content).decode("utf-8", errors="replace")
            except (binascii.Error, ValueError) as exc:
                raise GatewayFailure("File content is not valid base64", details={"path": path}) from exc
        return content

    def get_languages(self, owner: str, repo: str) -> dict[str, int]:
        def load() -> dict:
            with httpx.Client(timeout=self.timeout) as client:
                response = self._get(client, f"{self.api_base}/repos/{owner}/{repo}/languages")
            if response.status_code != 200:
                raise GatewayFailure("Failed to fetch languages", details={"status": response.status_code})
            return _json_body(response, dict, "languages", {"repository": f"{owner}/{repo}"})

        languages = self.cache.get_or_load(f"languages:{owner}/{repo}", load)
        return {str(name): int(size) for name, size in languages.items()}

    def analyze_structure(self, owner: str, repo: str) -> StructureSummary:
        branch = self.get_repository(owner, repo).default_branch
        with httpx.Client(timeout=self.timeout) as client:
            response = self._get(
                client,
                f"{self.api_base}/repos/{owner}/{repo}/git/trees/{branch}",
                {"recursive": "1"},
            )
        if response.status_code != 200:
            raise GatewayFailure("Failed to fetch repository tree", details={"status": response.status_code})

        summary = StructureSummary()
        tree = _json_body(response, dict, "repository tree", {"repository": f"{owner}/{repo}"}).get("tree") or []
        for entry in tree:
            if not isinstance(entry, dict):
                continue
            path = entry.get("path") or ""
            if entry.get("type") == "blob":
                summary.total_files += 1
                basename = path.rsplit("/", 1)[-1]
                ext = basename.rsplit(".", 1)[-1] if "." in basename else "no-extension"
                summary.file_types[ext] = summary.file_types.get(ext, 0) + 1
            elif entry.get("type") == "tree":
                summary.directories.append(path)
        return summary


def build_github_gateway(token: str | None = None) -> GitHubGateway:
    return GitHubGateway(token or settings.github_token, cache=build_response_cache())
