import json

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from reposcope.db.models import Analysis, Feature, Repository, Suggestion, Technology
from reposcope.db.session import SessionLocal
from reposcope.services import analysis_pipeline
from reposcope.services.analysis_payload import AnalysisPayload
from reposcope.services.analysis_pipeline import AnalysisService, load_repository_analysis
from reposcope.services.errors import AIFailure, GatewayFailure, NotFound, PersistenceFailure, ValidationFailure
from reposcope.services.relation_store import create_relation


PAYLOAD = {
    "architecture": "Layered FastAPI service",
    "features": [
        {"name": "OAuth login", "description": "GitHub OAuth", "category": "auth", "confidence": 130, "filePaths": ["app/auth.py"]},
        {"name": "Repository sync", "description": "", "confidence": 80},
    ],
    "technologies": [{"name": "FastAPI", "type": "framework", "version": "0.110"}],
    "patterns": ["repository pattern"],
    "quality": {"score": 72, "issues": ["few tests"], "strengths": ["typed"]},
    "suggestions": [],
}


class FakeLLM:
    def __init__(self, payload: dict | None = None, error: Exception | None = None) -> None:
        self.payload = payload
        self.error = error
        self.prompts: list[str] = []

    def analyze(self, prompt: str) -> AnalysisPayload:
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return AnalysisPayload.model_validate(self.payload)


def _count(db: Session, model) -> int:
    return db.execute(select(func.count()).select_from(model)).scalar_one()


def test_unknown_repository_fails_before_any_ai_call(db_session: Session) -> None:
    llm = FakeLLM(PAYLOAD)

    with pytest.raises(NotFound):
        AnalysisService(SessionLocal, llm).analyze_repository(999)

    assert llm.prompts == []
    assert _count(db_session, Analysis) == 0


def test_successful_analysis_persists_all_collections(db_session: Session, make_repository) -> None:
    repo = make_repository("hello-world", description="Code explorer", language="Python", stars=12)
    llm = FakeLLM(PAYLOAD)

    analysis = AnalysisService(SessionLocal, llm).analyze_repository(repo.id, "architecture")

    assert "Name: octocat/hello-world" in llm.prompts[0]
    assert "Stars: 12" in llm.prompts[0]

    assert analysis.id is not None
    assert analysis.status == "completed"
    assert analysis.score == 72
    assert analysis.summary == "Layered FastAPI service"
    assert json.loads(analysis.result)["patterns"] == ["repository pattern"]

    features = db_session.execute(select(Feature).order_by(Feature.name)).scalars().all()
    assert [feature.name for feature in features] == ["OAuth login", "Repository sync"]
    assert features[0].confidence == 100
    assert json.loads(features[0].file_paths) == ["app/auth.py"]
    assert features[1].description is None
    assert features[1].file_paths is None

    assert _count(db_session, Technology) == 1
    assert _count(db_session, Suggestion) == 0


def test_ai_failure_persists_nothing(db_session: Session, make_repository) -> None:
    repo = make_repository("hello-world")
    llm = FakeLLM(error=AIFailure("AI provider timed out"))

    with pytest.raises(AIFailure):
        AnalysisService(SessionLocal, llm).analyze_repository(repo.id)

    assert _count(db_session, Analysis) == 0
    assert _count(db_session, Feature) == 0


def test_gateway_failure_is_reported_as_ai_failure(make_repository) -> None:
    repo = make_repository("hello-world")
    llm = FakeLLM(error=GatewayFailure("connection reset"))

    with pytest.raises(AIFailure):
        AnalysisService(SessionLocal, llm).analyze_repository(repo.id)


def test_invalid_ai_payload_persists_nothing(db_session: Session, make_repository) -> None:
    repo = make_repository("hello-world")
    llm = FakeLLM(error=ValidationFailure("AI response is not valid JSON"))

    with pytest.raises(ValidationFailure):
        AnalysisService(SessionLocal, llm).analyze_repository(repo.id)

    assert _count(db_session, Analysis) == 0


def test_feature_write_failure_keeps_analysis_and_other_collections(
    db_session: Session, make_repository, monkeypatch: pytest.MonkeyPatch
) -> None:
    repo = make_repository("hello-world")
    payload = dict(PAYLOAD, suggestions=[{"type": "refactor", "title": "Split router", "description": "Too big"}])

    def broken_features(db, rows):
        raise PersistenceFailure("Failed to save features")

    monkeypatch.setattr(analysis_pipeline, "bulk_create_features", broken_features)

    analysis = AnalysisService(SessionLocal, FakeLLM(payload)).analyze_repository(repo.id)

    assert analysis.status == "completed"
    assert _count(db_session, Analysis) == 1
    assert _count(db_session, Feature) == 0
    assert _count(db_session, Technology) == 1
    assert _count(db_session, Suggestion) == 1


def test_single_suggestion_failure_does_not_stop_the_rest(
    db_session: Session, make_repository, monkeypatch: pytest.MonkeyPatch
) -> None:
    repo = make_repository("hello-world")
    payload = dict(
        PAYLOAD,
        suggestions=[
            {"type": "refactor", "title": "First", "description": "a"},
            {"type": "refactor", "title": "Second", "description": "b"},
            {"type": "refactor", "title": "Third", "description": "c"},
        ],
    )
    original = analysis_pipeline.create_suggestion

    def flaky_create(db, suggestion):
        if suggestion.title == "Second":
            raise PersistenceFailure("Failed to save suggestion 'Second'")
        return original(db, suggestion)

    monkeypatch.setattr(analysis_pipeline, "create_suggestion", flaky_create)

    AnalysisService(SessionLocal, FakeLLM(payload)).analyze_repository(repo.id)

    titles = db_session.execute(select(Suggestion.title).order_by(Suggestion.title)).scalars().all()
    assert titles == ["First", "Third"]


def test_generate_suggestions_reads_stored_rows(make_repository) -> None:
    repo = make_repository("hello-world")
    payload = dict(PAYLOAD, suggestions=[{"type": "unknown", "title": "Add CI", "description": "No workflows", "priority": "urgent"}])
    service = AnalysisService(SessionLocal, FakeLLM(payload))
    service.analyze_repository(repo.id)

    suggestions = service.generate_suggestions(repo.id)

    assert len(suggestions) == 1
    assert suggestions[0].suggestion_type == "best_practice"
    assert suggestions[0].priority == "medium"
    assert suggestions[0].status == "pending"


def test_load_repository_analysis_aggregates_everything(db_session: Session, make_repository) -> None:
    repo = make_repository("hello-world")
    other = make_repository("hello-world-v2")
    AnalysisService(SessionLocal, FakeLLM(PAYLOAD)).analyze_repository(repo.id)
    create_relation(db_session, source_repository_id=repo.id, target_repository_id=other.id, relation_type="continuation", similarity=88)

    view = load_repository_analysis(db_session, repo.id)

    assert isinstance(view.repository, Repository)
    assert len(view.analyses) == 1
    assert len(view.features) == 2
    assert len(view.technologies) == 1
    assert [relation.target_repository_id for relation in view.relations] == [other.id]

    with pytest.raises(NotFound):
        load_repository_analysis(db_session, 999)
