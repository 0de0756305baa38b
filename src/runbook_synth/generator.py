"""
Checklist generation

Renders the checklist prompt, calls the LLM router and turns the reply into
ordered ``ChecklistStep`` objects. A JSON reply is preferred; a Markdown
list is accepted as a fallback.
"""

import json
import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Protocol

import jinja2
import yaml

from .exceptions import GenerationError
from .llm_client import LLMRouter
from .models import (
    Alert,
    ChecklistStep,
    EnrichedContext,
    GenerationConfig,
    RetrievedChunk,
    StepPriority,
)
from .observability.tracer import set_attribute, trace_async

logger = logging.getLogger(__name__)

DEFAULT_PROMPTS_DIR = Path(__file__).parent / "prompts"
DEFAULT_TEMPLATE = "checklist:v1"
MAX_SUMMARY_LENGTH = 200
PROMPT_METRICS_LIMIT = 10
PROMPT_LOGS_LIMIT = 10

STEP_PATTERN = re.compile(r"^\s*(?:Step\s+\d+\s*[:.)]|[-*+]|\d+[.)])\s*(.*)$", re.IGNORECASE)
SOURCE_SUFFIX_PATTERN = re.compile(r"\s*\[(?:source|chunk)[:\s]+([^\]]+)\]\s*$", re.IGNORECASE)
URGENT_PATTERN = re.compile(r"\b(urgent|critical|immediately)\b", re.IGNORECASE)


def extract_json_from_text(text: str) -> Optional[dict[str, Any]]:
    """
    Extract the first JSON object from text that may wrap it in Markdown
    fences or prose
    """
    for match in re.findall(r"```(?:json)?\s*(\{.*?\})\s*```", text, re.DOTALL | re.IGNORECASE):
        try:
            return json.loads(match)
        except json.JSONDecodeError:
            continue

    depth = 0
    start = None
    for i, char in enumerate(text):
        if char == "{":
            if depth == 0:
                start = i
            depth += 1
        elif char == "}" and depth:
            depth -= 1
            if depth == 0 and start is not None:
                try:
                    data = json.loads(text[start : i + 1])
                except json.JSONDecodeError:
                    start = None
                    continue
                if isinstance(data, dict):
                    return data

    return None


class PromptManager:
    """Jinja2 templates stored as ``<name>/<version>/template.jinja2`` plus ``meta.yaml``"""

    def __init__(self, prompts_dir: Optional[str] = None):
        self.prompts_dir = Path(prompts_dir) if prompts_dir else DEFAULT_PROMPTS_DIR
        self.env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(self.prompts_dir)),
            autoescape=jinja2.select_autoescape(["html", "xml"]),
            undefined=jinja2.StrictUndefined,
        )

    @staticmethod
    def _split_key(template_key: str) -> tuple[str, str]:
        name, _, version = template_key.partition(":")
        return name, version or "v1"

    def load_template_meta(self, template_key: str) -> dict[str, Any]:
        """Metadata of ``name:version``; empty when the template has none"""
        name, version = self._split_key(template_key)
        meta_path = self.prompts_dir / name / version / "meta.yaml"
        if not meta_path.exists():
            logger.warning(f"Template metadata not found: {meta_path}")
            return {}
        with open(meta_path, encoding="utf-8") as f:
            return yaml.safe_load(f) or {}

    def render_template(self, template_key: str, context: dict[str, Any]) -> str:
        name, version = self._split_key(template_key)
        template = self.env.get_template(f"{name}/{version}/template.jinja2")
        return template.render(**context)


@dataclass
class GenerationResult:
    """Parsed output of one generation call"""

    summary: str
    steps: list[ChecklistStep]
    provider: Optional[str] = None
    model: Optional[str] = None


class GenerationPort(Protocol):
    async def generate(
        self,
        alert: Alert,
        context: EnrichedContext,
        chunks: Sequence[RetrievedChunk],
        config: GenerationConfig,
    ) -> GenerationResult:
        ...


def resolve_source(value: Any, chunks: Sequence[RetrievedChunk]) -> Optional[str]:
    """Chunk id named by ``value``: a retrieved chunk id or a 1-based position"""
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip().lstrip("[").rstrip("]").strip()
    for item in chunks:
        if item.chunk.id == text:
            return item.chunk.id
    if text.isdigit() and 1 <= int(text) <= len(chunks):
        return chunks[int(text) - 1].chunk.id
    return None


def _truncate_summary(text: str) -> str:
    text = text.strip()
    if len(text) <= MAX_SUMMARY_LENGTH:
        return text
    return text[: MAX_SUMMARY_LENGTH - 3].rstrip() + "..."


def _parse_json_steps(
    data: dict[str, Any], chunks: Sequence[RetrievedChunk]
) -> tuple[str, list[ChecklistStep]]:
    raw_steps = data.get("steps") or []
    if not isinstance(raw_steps, list):
        raw_steps = []

    steps = []
    for raw in raw_steps:
        if isinstance(raw, str):
            raw = {"description": raw}
        if not isinstance(raw, dict):
            continue
        description = str(raw.get("description") or raw.get("action") or "").strip()
        if not description:
            continue
        commands = raw.get("commands") or []
        if isinstance(commands, str):
            commands = [commands]
        steps.append(
            ChecklistStep(
                order=len(steps) + 1,
                description=description,
                priority=StepPriority.parse(raw.get("priority")),
                source_chunk_id=resolve_source(raw.get("source", raw.get("source_chunk_id")), chunks),
                rationale=raw.get("rationale") or None,
                commands=[str(command) for command in commands if str(command).strip()],
            )
        )
    return _truncate_summary(str(data.get("summary") or "")), steps


def _parse_markdown_steps(
    text: str, chunks: Sequence[RetrievedChunk]
) -> tuple[str, list[ChecklistStep]]:
    summary = ""
    steps = []
    for line in text.splitlines():
        if not line.strip():
            continue
        match = STEP_PATTERN.match(line)
        if not match:
            if not summary and not steps:
                summary = line.strip().lstrip("#").strip()
            continue

        description = match.group(1).strip()
        source = None
        source_match = SOURCE_SUFFIX_PATTERN.search(description)
        if source_match:
            source = resolve_source(source_match.group(1), chunks)
            description = description[: source_match.start()].strip()
        if not description:
            continue

        priority = StepPriority.HIGH if URGENT_PATTERN.search(description) else StepPriority.MEDIUM
        steps.append(
            ChecklistStep(
                order=len(steps) + 1,
                description=description,
                priority=priority,
                source_chunk_id=source,
            )
        )
    return _truncate_summary(summary), steps


def parse_checklist_response(
    text: str, chunks: Sequence[RetrievedChunk]
) -> tuple[str, list[ChecklistStep]]:
    """
    Parse an LLM reply into a summary and ordered steps

    Returns an empty step list when nothing usable was found.
    """
    data = extract_json_from_text(text)
    if data is not None and "steps" in data:
        summary, steps = _parse_json_steps(data, chunks)
        if steps:
            return summary, steps
        logger.debug("JSON reply had no usable steps; trying Markdown list")
    return _parse_markdown_steps(text, chunks)


def build_prompt_context(
    alert: Alert,
    context: EnrichedContext,
    chunks: Sequence[RetrievedChunk],
    max_steps: int = 10,
) -> dict[str, Any]:
    return {
        "alert": alert,
        "resource": context.resource,
        "metrics": context.metrics[-PROMPT_METRICS_LIMIT:],
        "logs": context.logs[-PROMPT_LOGS_LIMIT:],
        "chunks": list(chunks),
        "max_steps": max_steps,
    }


class ChecklistGenerator:
    """LLM-backed ``GenerationPort``"""

    def __init__(
        self,
        router: LLMRouter,
        prompt_manager: Optional[PromptManager] = None,
        template_key: str = DEFAULT_TEMPLATE,
        router_name: Optional[str] = None,
    ):
        self.router = router
        self.prompt_manager = prompt_manager or PromptManager()
        self.template_key = template_key
        self.router_name = router_name
        self._meta = self.prompt_manager.load_template_meta(template_key)

    def render_prompt(
        self, alert: Alert, context: EnrichedContext, chunks: Sequence[RetrievedChunk]
    ) -> str:
        prompt_context = build_prompt_context(
            alert, context, chunks, max_steps=self._meta.get("max_steps", 10)
        )
        return self.prompt_manager.render_template(self.template_key, prompt_context)

    @trace_async("generation.generate")
    async def generate(
        self,
        alert: Alert,
        context: EnrichedContext,
        chunks: Sequence[RetrievedChunk],
        config: GenerationConfig,
    ) -> GenerationResult:
        """
        Generate checklist steps for ``alert``

        Raises:
            GenerationError: If the LLM call fails or the reply has no steps
        """
        prompt = self.render_prompt(alert, context, chunks)
        set_attribute("generation.prompt_length", len(prompt))

        kwargs: dict[str, Any] = {
            "template_type": self._meta.get("template_type", "checklist"),
            "max_tokens": config.max_tokens,
            "temperature": config.temperature,
        }
        if config.model:
            kwargs["model"] = config.model

        try:
            response = await self.router.generate(
                prompt=prompt,
                system_prompt=self._meta.get("system_prompt"),
                router_name=self.router_name,
                **kwargs,
            )
        except GenerationError:
            raise
        except Exception as e:
            raise GenerationError(
                f"LLM request failed: {e}", alert_id=alert.id, cause=e
            ) from e

        summary, steps = parse_checklist_response(response.content, chunks)
        if not steps:
            raise GenerationError(
                "LLM response contained no checklist steps",
                alert_id=alert.id,
                context={"response": response.content[:500]},
            )

        set_attribute("generation.steps", len(steps))
        return GenerationResult(
            summary=summary or f"Troubleshooting checklist for {alert.title}",
            steps=steps,
            provider=response.provider,
            model=response.model,
        )
