import json
import logging
import math
from dataclasses import dataclass, field
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from reposcope.db.models import Analysis, Feature, Suggestion, Technology
from reposcope.domain import (
    AnalysisStatus,
    AnalysisType,
    SuggestionPriority,
    SuggestionStatus,
    SuggestionType,
    TechnologyType,
)


logger = logging.getLogger("reposcope.services.analysis_payload")


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _none_to_list(value):
    return [] if value is None else value


def _percent(value) -> int:
    """Clamp a model-reported number into 0..100; a missing value counts as zero."""
    if value is None or value == "":
        return 0
    try:
        number = float(value)
    except TypeError as exc:
        raise ValueError("expected a number") from exc
    except OverflowError as exc:
        raise ValueError("number is out of range") from exc
    if not math.isfinite(number):
        raise ValueError("number must be finite")
    return max(0, min(100, round(number)))


class _PayloadModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)


class FeaturePayload(_PayloadModel):
    name: str = ""
    description: str | None = None
    category: str | None = None
    confidence: int = 0
    file_paths: list[str] = Field(default_factory=list, alias="filePaths")
    code_snippet: str | None = Field(default=None, alias="codeSnippet")

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, value):
        return "" if value is None else value

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value):
        return _percent(value)

    @field_validator("file_paths", mode="before")
    @classmethod
    def _paths(cls, value):
        return _none_to_list(value)


class TechnologyPayload(_PayloadModel):
    name: str = ""
    type: str | None = None
    version: str | None = None
    package_manager: str | None = Field(default=None, alias="packageManager")

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, value):
        return "" if value is None else value


class SuggestionPayload(_PayloadModel):
    type: str | None = None
    title: str = ""
    description: str = ""
    priority: str | None = None

    @field_validator("title", "description", mode="before")
    @classmethod
    def _text(cls, value):
        return "" if value is None else value


class QualityPayload(_PayloadModel):
    score: int = 0
    issues: list[str] = Field(default_factory=list)
    strengths: list[str] = Field(default_factory=list)

    @field_validator("score", mode="before")
    @classmethod
    def _score(cls, value):
        # A missing score is stored as zero, not as "no score".
        return _percent(value)

    @field_validator("issues", "strengths", mode="before")
    @classmethod
    def _lists(cls, value):
        return _none_to_list(value)


class AnalysisPayload(_PayloadModel):
    """Structured body the AI model returns for one repository."""

    architecture: str = ""
    features: list[FeaturePayload] = Field(default_factory=list)
    technologies: list[TechnologyPayload] = Field(default_factory=list)
    patterns: list[str] = Field(default_factory=list)
    quality: QualityPayload = Field(default_factory=QualityPayload)
    suggestions: list[SuggestionPayload] = Field(default_factory=list)

    @field_validator("architecture", mode="before")
    @classmethod
    def _architecture(cls, value):
        if value is None:
            return ""
        if isinstance(value, (dict, list)):
            return json.dumps(value)
        return value

    @field_validator("features", "technologies", "patterns", "suggestions", mode="before")
    @classmethod
    def _lists(cls, value):
        return _none_to_list(value)

    @field_validator("patterns", mode="after")
    @classmethod
    def _pattern_text(cls, value):
        return [item for item in value if item.strip()]

    @field_validator("quality", mode="before")
    @classmethod
    def _quality(cls, value):
        return {} if value is None else value

    def to_records(self, repository_id: int, analysis_type: AnalysisType | str) -> "AnalysisRecords":
        now = datetime.now(UTC)

        analysis = Analysis(
            repository_id=repository_id,
            analysis_type=AnalysisType(analysis_type).value,
            status=AnalysisStatus.COMPLETED.value,
            result=self.model_dump_json(),
            summary=_blank_to_none(self.architecture),
            score=self.quality.score,
            created_at=now,
            completed_at=now,
        )

        features = [
            Feature(
                repository_id=repository_id,
                name=item.name.strip(),
                description=_blank_to_none(item.description),
                category=_blank_to_none(item.category),
                file_paths=json.dumps(item.file_paths) if item.file_paths else None,
                code_snippet=_blank_to_none(item.code_snippet),
                confidence=item.confidence,
                created_at=now,
            )
            for item in self.features
            if item.name.strip()
        ]

        technologies = [
            Technology(
                repository_id=repository_id,
                name=item.name.strip(),
                version=_blank_to_none(item.version),
                type=_coerce(TechnologyType, item.type, TechnologyType.TOOL),
                package_manager=_blank_to_none(item.package_manager),
                created_at=now,
            )
            for item in self.technologies
            if item.name.strip()
        ]

        suggestions = [
            Suggestion(
                repository_id=repository_id,
                suggestion_type=_coerce(SuggestionType, item.type, SuggestionType.BEST_PRACTICE),
                title=item.title.strip(),
                description=item.description.strip(),
                priority=_coerce(SuggestionPriority, item.priority, SuggestionPriority.MEDIUM),
                status=SuggestionStatus.PENDING.value,
                created_at=now,
                updated_at=now,
            )
            for item in self.suggestions
            if item.title.strip()
        ]

        dropped = (
            len(self.features) - len(features)
            + len(self.technologies) - len(technologies)
            + len(self.suggestions) - len(suggestions)
        )
        if dropped:
            logger.info("payload.unnamed_entries_dropped repo_id=%s count=%s", repository_id, dropped)

        return AnalysisRecords(analysis=analysis, features=features, technologies=technologies, suggestions=suggestions)


def _coerce(enum_cls, value: str | None, default) -> str:
    text = (value or "").strip().lower().replace("-", "_").replace(" ", "_")
    try:
        return enum_cls(text).value
    except ValueError:
        return default.value


@dataclass
class AnalysisRecords:
    analysis: Analysis
    features: list[Feature] = field(default_factory=list)
    technologies: list[Technology] = field(default_factory=list)
    suggestions: list[Suggestion] = field(default_factory=list)
