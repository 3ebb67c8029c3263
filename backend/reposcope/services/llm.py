import json
import logging
import time

import httpx
from pydantic import ValidationError

from reposcope.config import settings
from reposcope.observability import record_llm_request
from reposcope.services.analysis_payload import AnalysisPayload
from reposcope.services.errors import AIFailure, ValidationFailure


logger = logging.getLogger("reposcope.services.llm")

SYSTEM_INSTRUCTION = (
    "You are an expert analyst of source code and software architecture. "
    "Analyze the repository you are given and identify: "
    "1. the architecture and the patterns it uses; "
    "2. the features it implements, with details; "
    "3. its technologies and technology stack; "
    "4. design patterns and best practices; "
    "5. code quality and areas for improvement; "
    "6. concrete suggestions for optimization. "
    "Answer with a single JSON object with the keys: architecture (string), "
    "features (list of {name, description, category, confidence 0-100, filePaths}), "
    "technologies (list of {name, type: language|framework|library|tool|database|platform, version}), "
    "patterns (list of strings), quality ({score 0-100, issues, strengths}), "
    "suggestions (list of {type: merge_features|add_feature|refactor|best_practice|consolidate|update_dependency, "
    "title, description, priority: low|medium|high|critical})."
)


def strip_code_fence(raw: str) -> str:
    """Remove a markdown code fence and any prose around a JSON object body."""
    text = raw.strip()
    if text.startswith("```"):
        text = text[3:]
        if text[:4].lower() == "json":
            text = text[4:]
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
        text = text.strip()

    if not text.startswith("{"):
        start, end = text.find("{"), text.rfind("}")
        if start != -1 and end > start:
            text = text[start : end + 1]
    return text


def parse_analysis_payload(raw: str) -> AnalysisPayload:
    body = strip_code_fence(raw)
    try:
        data = json.loads(body)
    except ValueError as exc:
        logger.error("llm.invalid_json raw=%r", raw)
        raise ValidationFailure("AI response is not valid JSON", details={"reason": str(exc)}) from exc

    if not isinstance(data, dict):
        logger.error("llm.unexpected_shape raw=%r", raw)
        raise ValidationFailure("AI response is not a JSON object")

    try:
        return AnalysisPayload.model_validate(data)
    except ValidationError as exc:
        logger.error("llm.schema_mismatch raw=%r", raw)
        raise ValidationFailure(
            "AI response does not match the analysis schema",
            details={"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc


def _message_content(data) -> str | None:
    """Pull the first choice's message text out of a chat-completions body.

    Returns None when the body does not have the expected shape and an empty
    string when the message carries no content.
    """
    if not isinstance(data, dict):
        return None
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    message = choices[0].get("message")
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    if content is None:
        return ""
    if not isinstance(content, str):
        return None
    return content


class LLMGateway:
    """OpenAI-compatible chat-completions client returning parsed analyses."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        temperature: float | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.openrouter_api_key
        self.base_url = str(base_url or settings.openrouter_base_url).rstrip("/")
        self.model = model or settings.llm_model
        self.timeout = float(timeout if timeout is not None else settings.llm_timeout_seconds)
        self.temperature = settings.llm_temperature if temperature is None else temperature

    def analyze(self, prompt: str) -> AnalysisPayload:
        if not self.api_key:
            record_llm_request("error", "not_configured")
            raise AIFailure("AI provider API key is not configured")

        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_INSTRUCTION},
                {"role": "user", "content": prompt},
            ],
            "temperature": self.temperature,
            "response_format": {"type": "json_object"},
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        started = time.perf_counter()
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(f"{self.base_url}/chat/completions", headers=headers, json=body)
        except httpx.TimeoutException as exc:
            record_llm_request("error", "timeout")
            raise AIFailure("AI provider timed out", details={"timeout_seconds": self.timeout}) from exc
        except httpx.HTTPError as exc:
            record_llm_request("error", "transport")
            raise AIFailure("AI provider is unreachable") from exc

        if response.status_code != 200:
            record_llm_request("error", f"http_{response.status_code}")
            raise AIFailure("AI provider returned an error", details={"status": response.status_code})

        try:
            data = response.json()
        except ValueError as exc:
            record_llm_request("error", "invalid_body")
            logger.error("llm.invalid_body status=%s", response.status_code)
            raise AIFailure("AI provider returned a non-JSON body") from exc

        content = _message_content(data)
        if content is None:
            record_llm_request("error", "invalid_body")
            logger.error("llm.unexpected_envelope body=%r", data)
            raise AIFailure("AI provider returned an unexpected response shape")
        if not content.strip():
            record_llm_request("error", "empty")
            raise AIFailure("Empty response from AI provider")

        logger.info("llm.completed model=%s duration_s=%.3f chars=%s", self.model, time.perf_counter() - started, len(content))
        try:
            payload = parse_analysis_payload(content)
        except ValidationFailure:
            record_llm_request("error", "invalid_payload")
            raise
        record_llm_request("success")
        return payload


def build_llm_gateway() -> LLMGateway:
    return LLMGateway()
