import logging
import time
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from reposcope.db.models import Analysis, Feature, Repository, RepositoryRelation, Suggestion, Technology
from reposcope.domain import AnalysisType
from reposcope.observability import record_soft_failure, record_stage_duration, trace_span
from reposcope.services.analysis_store import (
    bulk_create_features,
    bulk_create_technologies,
    create_analysis,
    list_repository_analyses,
    list_repository_features,
    list_repository_technologies,
)
from reposcope.services.errors import AIFailure, GatewayFailure, NotFound, PersistenceFailure, ValidationFailure
from reposcope.services.prompts import MetadataPromptBuilder, PromptBuilder
from reposcope.services.relation_store import list_repository_relations
from reposcope.services.repository_store import get_repository
from reposcope.services.suggestion_store import create_suggestion, list_repository_suggestions


logger = logging.getLogger("reposcope.services.analysis_pipeline")


@dataclass
class RepositoryAnalysisView:
    repository: Repository
    analyses: list[Analysis] = field(default_factory=list)
    features: list[Feature] = field(default_factory=list)
    technologies: list[Technology] = field(default_factory=list)
    suggestions: list[Suggestion] = field(default_factory=list)
    relations: list[RepositoryRelation] = field(default_factory=list)


class AnalysisService:
    """Runs one repository through the AI model and stores what it reports.

    Loading the repository and calling the model are hard failures. Once the
    model has answered, the analysis row must be saved; features, technologies
    and suggestions are saved best-effort and every skipped write is logged.
    """

    def __init__(self, session_factory, llm, prompt_builder: PromptBuilder | None = None) -> None:
        self.session_factory = session_factory
        self.llm = llm
        self.prompt_builder = prompt_builder or MetadataPromptBuilder()

    def analyze_repository(self, repo_id: int, analysis_type: AnalysisType | str = AnalysisType.ARCHITECTURE) -> Analysis:
        analysis_type = AnalysisType(analysis_type)

        with self.session_factory() as db, trace_span("analysis.run", repo_id=repo_id, analysis_type=analysis_type.value):
            repo = get_repository(db, repo_id)
            if repo is None:
                raise NotFound(f"Repository {repo_id} not found", details={"repository_id": repo_id})

            prompt = self.prompt_builder.build(repo)
            logger.info("analysis.started repo_id=%s repo=%s type=%s", repo_id, repo.full_name, analysis_type.value)

            started = time.perf_counter()
            try:
                payload = self.llm.analyze(prompt)
            except (AIFailure, ValidationFailure):
                record_stage_duration("ai_call", "error", time.perf_counter() - started)
                raise
            except GatewayFailure as exc:
                record_stage_duration("ai_call", "error", time.perf_counter() - started)
                raise AIFailure(f"AI analysis failed: {exc}", details=exc.details) from exc
            record_stage_duration("ai_call", "success", time.perf_counter() - started)

            started = time.perf_counter()
            records = payload.to_records(repo_id, analysis_type)
            analysis_id = create_analysis(db, records.analysis)
            # Detach so a later rollback of a sub-collection cannot expire the returned row.
            db.expunge(records.analysis)

            self._persist_collection(db, repo_id, "features", bulk_create_features, records.features)
            self._persist_collection(db, repo_id, "technologies", bulk_create_technologies, records.technologies)

            saved_suggestions = 0
            for suggestion in records.suggestions:
                try:
                    create_suggestion(db, suggestion)
                    saved_suggestions += 1
                except PersistenceFailure as exc:
                    record_soft_failure("suggestions")
                    logger.error(
                        "analysis.persist_skipped repo_id=%s collection=suggestions title=%r error=%s",
                        repo_id,
                        suggestion.title,
                        exc.__cause__ or exc,
                    )
            record_stage_duration("persist", "success", time.perf_counter() - started)

        logger.info(
            "analysis.completed repo_id=%s analysis_id=%s features=%s technologies=%s suggestions=%s/%s",
            repo_id,
            analysis_id,
            len(records.features),
            len(records.technologies),
            saved_suggestions,
            len(records.suggestions),
        )
        return records.analysis

    def generate_suggestions(self, repo_id: int) -> list[Suggestion]:
        with self.session_factory() as db:
            return list_repository_suggestions(db, repo_id)

    @staticmethod
    def _persist_collection(db: Session, repo_id: int, collection: str, writer, rows: list) -> None:
        if not rows:
            return
        try:
            writer(db, rows)
        except PersistenceFailure as exc:
            record_soft_failure(collection)
            logger.error(
                "analysis.persist_skipped repo_id=%s collection=%s rows=%s error=%s",
                repo_id,
                collection,
                len(rows),
                exc.__cause__ or exc,
            )


def load_repository_analysis(db: Session, repo_id: int) -> RepositoryAnalysisView:
    repo = get_repository(db, repo_id)
    if repo is None:
        raise NotFound(f"Repository {repo_id} not found", details={"repository_id": repo_id})

    return RepositoryAnalysisView(
        repository=repo,
        analyses=list_repository_analyses(db, repo_id),
        features=list_repository_features(db, repo_id),
        technologies=list_repository_technologies(db, repo_id),
        suggestions=list_repository_suggestions(db, repo_id),
        relations=list_repository_relations(db, repo_id),
    )
