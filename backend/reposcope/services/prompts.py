import logging
from typing import Protocol

from reposcope.db.models import Repository
from reposcope.services.errors import GatewayFailure


logger = logging.getLogger("reposcope.services.prompts")

MANIFEST_FILES = (
    ("package.json", "npm"),
    ("requirements.txt", "pip"),
    ("pyproject.toml", "pip"),
    ("go.mod", "go"),
    ("Cargo.toml", "cargo"),
    ("pom.xml", "maven"),
)
README_FILE = "README.md"
MAX_FILE_CHARS = 4000


class PromptBuilder(Protocol):
    def build(self, repo: Repository) -> str: ...


class MetadataPromptBuilder:
    def build(self, repo: Repository) -> str:
        return (
            "Analyze this repository:\n"
            f"Name: {repo.full_name}\n"
            f"Description: {repo.description or ''}\n"
            f"Language: {repo.language or ''}\n"
            f"Stars: {repo.stars or 0}\n"
            f"URL: {repo.url}\n"
        )


class ManifestPromptBuilder(MetadataPromptBuilder):
    """Adds the README, dependency manifests and language breakdown to the metadata prompt.

    Files that are missing or fail to load are left out; the prompt never
    fails because of them.
    """

    def __init__(self, github, max_file_chars: int = MAX_FILE_CHARS) -> None:
        self.github = github
        self.max_file_chars = max_file_chars

    def build(self, repo: Repository) -> str:
        owner, _, name = repo.full_name.partition("/")
        sections = [super().build(repo)]

        try:
            languages = self.github.get_languages(owner, name)
        except GatewayFailure as exc:
            logger.warning("prompt.languages_unavailable repo=%s error=%s", repo.full_name, exc)
            languages = {}
        if languages:
            total = sum(languages.values()) or 1
            breakdown = ", ".join(
                f"{lang} {round(size * 100 / total, 1)}%"
                for lang, size in sorted(languages.items(), key=lambda kv: kv[1], reverse=True)
            )
            sections.append(f"Languages: {breakdown}\n")

        for path, manager in ((README_FILE, None), *MANIFEST_FILES):
            content = self._read(owner, name, path)
            if not content:
                continue
            label = f"{path} ({manager})" if manager else path
            sections.append(f"\n--- {label} ---\n{content[: self.max_file_chars]}\n")

        return "".join(sections)

    def _read(self, owner: str, name: str, path: str) -> str:
        try:
            return self.github.get_file_content(owner, name, path)
        except GatewayFailure as exc:
            logger.warning("prompt.file_unavailable repo=%s/%s path=%s error=%s", owner, name, path, exc)
            return ""
