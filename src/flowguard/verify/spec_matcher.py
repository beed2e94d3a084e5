"""Match analyzed diffs against spec requirements with a language model."""

import asyncio
import logging
import re
from contextlib import AbstractAsyncContextManager, nullcontext
from dataclasses import dataclass
from typing import Any

from flowguard.config.settings import DEFAULT_LLM_TIMEOUT_SECONDS
from flowguard.llm.prompts.verify import (
    MATCH_RESPONSE_SCHEMA,
    MATCH_SYSTEM_PROMPT,
    build_match_prompt,
)
from flowguard.llm.providers.base import LLMProvider
from flowguard.verify.errors import LanguageModelError, NotFoundError
from flowguard.verify.models import (
    ChangedFile,
    DiffAnalysis,
    Deviation,
    DeviationType,
    RequirementMatch,
    SpecMatchResult,
)
from flowguard.verify.storage import ArtifactStorage

logger = logging.getLogger(__name__)

_SECTION_HEADINGS = (
    r"Functional\s*Requirements?",
    r"Non[-\s]?Functional\s*Requirements?",
    r"Technical\s*(?:Plan|Requirements?)?",
)
_BULLET = re.compile(r"^\s*[-*]\s+(.+)$", re.MULTILINE)
_TAGGED_BULLET = re.compile(
    r"^\s*[-*]\s*((?:FR|NFR|REQ)(?:-?\d+)?\b[:.]?\s*.+)$", re.MULTILINE | re.IGNORECASE
)


def extract_requirements(spec_content: str) -> list[str]:
    """Extract requirement bullets from a spec.

    Bullets under Functional, Non-Functional and Technical headings are
    collected in that order. Specs without those headings fall back to
    FR-/NFR-/REQ- tagged bullets anywhere in the text.
    """
    requirements: list[str] = []
    for heading in _SECTION_HEADINGS:
        section = re.search(
            rf"^#{{1,6}}\s*{heading}[^\n]*\n(.*?)(?=^#{{1,6}}\s|\Z)",
            spec_content,
            re.IGNORECASE | re.MULTILINE | re.DOTALL,
        )
        if section:
            requirements.extend(
                item.strip() for item in _BULLET.findall(section.group(1))
            )

    if not requirements:
        requirements = [item.strip() for item in _TAGGED_BULLET.findall(spec_content)]
    return requirements


@dataclass
class _LoadedSpec:
    content: str
    requirements: list[str]


def _clamp_unit(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return min(1.0, max(0.0, number))


def _optional_int(value: Any) -> int | None:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class SpecMatcher:
    """Matches each changed file against a spec's requirements.

    One language-model request is issued per changed file so prompts stay
    bounded. Spec loading and model failures never raise; they come back as
    results with ``system_error`` set.
    """

    def __init__(
        self,
        provider: LLMProvider,
        storage: ArtifactStorage,
        timeout: float = DEFAULT_LLM_TIMEOUT_SECONDS,
    ) -> None:
        self.provider = provider
        self.storage = storage
        self.timeout = timeout
        self._spec_cache: dict[str, _LoadedSpec] = {}

    def clear_cache(self) -> None:
        """Forget cached spec content."""
        self._spec_cache.clear()

    def spec_content(self, spec_id: str) -> str:
        """Content of an already-loaded spec, or an empty string."""
        cached = self._spec_cache.get(spec_id)
        return cached.content if cached else ""

    def _load_spec(self, spec_id: str) -> _LoadedSpec:
        cached = self._spec_cache.get(spec_id)
        if cached is not None:
            return cached
        spec = self.storage.load_spec(spec_id)
        loaded = _LoadedSpec(spec.content, extract_requirements(spec.content))
        self._spec_cache[spec_id] = loaded
        logger.debug(
            "Loaded spec %s with %d requirements", spec_id, len(loaded.requirements)
        )
        return loaded

    async def match_changes_to_spec(
        self,
        analysis: DiffAnalysis,
        spec_id: str,
        semaphore: asyncio.Semaphore | None = None,
    ) -> list[SpecMatchResult]:
        """Match every changed file against one spec.

        Results are returned in changed-file order regardless of completion
        order. A missing spec yields a single failure result.
        """
        try:
            spec = self._load_spec(spec_id)
        except (NotFoundError, OSError, ValueError) as e:
            logger.warning("Cannot load spec %s: %s", spec_id, e)
            return [self._missing_spec_result(analysis, spec_id, e)]

        logger.info(
            "Matching %d files against spec %s", analysis.total_files, spec_id
        )
        return list(
            await asyncio.gather(
                *(
                    self._match_file(file, spec_id, spec, semaphore)
                    for file in analysis.changed_files
                )
            )
        )

    def _missing_spec_result(
        self, analysis: DiffAnalysis, spec_id: str, error: Exception
    ) -> SpecMatchResult:
        return SpecMatchResult(
            spec_id=spec_id,
            file_changes=list(analysis.changed_files),
            deviations=[
                Deviation(
                    type=DeviationType.MISSING,
                    description=f"Spec {spec_id} could not be loaded: {error}",
                    expected_behavior="Specification available for verification",
                    actual_behavior="Specification missing or unreadable",
                )
            ],
            system_error=str(error),
        )

    async def _match_file(
        self,
        file: ChangedFile,
        spec_id: str,
        spec: _LoadedSpec,
        semaphore: asyncio.Semaphore | None,
    ) -> SpecMatchResult:
        messages = [
            {
                "role": "user",
                "content": build_match_prompt(file, spec.requirements, spec.content),
            }
        ]
        limiter: AbstractAsyncContextManager[Any] = semaphore or nullcontext()
        try:
            async with limiter:
                data = await self.provider.generate_structured(
                    messages,
                    MATCH_RESPONSE_SCHEMA,
                    system=MATCH_SYSTEM_PROMPT,
                    timeout=self.timeout,
                    phase="match",
                    spec_id=spec_id,
                )
        except LanguageModelError as e:
            logger.warning("Matching %s against %s failed: %s", file.path, spec_id, e)
            return SpecMatchResult(
                spec_id=spec_id,
                file_changes=[file],
                deviations=[
                    Deviation(
                        type=DeviationType.INCOMPLETE,
                        description=f"Failed to analyze changes: {e}",
                        expected_behavior="Successful analysis",
                        actual_behavior="Analysis failed",
                        file_path=file.path,
                    )
                ],
                system_error=str(e),
            )

        return self._to_result(data, file, spec_id)

    def _to_result(
        self, data: dict[str, Any], file: ChangedFile, spec_id: str
    ) -> SpecMatchResult:
        matched: list[RequirementMatch] = []
        for index, item in enumerate(data.get("matched_requirements") or [], start=1):
            if not isinstance(item, dict):
                continue
            matched.append(
                RequirementMatch(
                    requirement_id=str(item.get("requirement_id") or f"req-{index}"),
                    requirement_text=str(item.get("requirement_text", "")),
                    relevance=_clamp_unit(item.get("relevance")),
                    reasoning=str(item.get("reasoning", "")),
                )
            )

        deviations: list[Deviation] = []
        for item in data.get("deviations") or []:
            if not isinstance(item, dict) or not item.get("description"):
                continue
            deviations.append(
                Deviation(
                    type=DeviationType.parse(item.get("type")),
                    description=str(item["description"]),
                    expected_behavior=str(item.get("expected_behavior", "")),
                    actual_behavior=str(item.get("actual_behavior", "")),
                    file_path=item.get("file_path") or file.path,
                    line_number=_optional_int(item.get("line_number")),
                    requirement_id=item.get("requirement_id") or None,
                )
            )

        logger.debug(
            "%s vs %s: %d matched, %d deviations",
            file.path,
            spec_id,
            len(matched),
            len(deviations),
        )
        return SpecMatchResult(
            spec_id=spec_id,
            file_changes=[file],
            matched_requirements=matched,
            deviations=deviations,
            confidence=_clamp_unit(data.get("confidence")),
        )
