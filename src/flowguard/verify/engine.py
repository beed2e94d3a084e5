"""Verification engine: runs a diff through matching, rating, feedback and rules.

Stages run in order (parse, match, rate, feedback, rules, persist) and the
cancel event is checked between them. Model and rule failures are recovered
as system-category issues; only a structural diff error escapes. A record is
persisted once, after every stage has finished.
"""

import asyncio
import logging
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass, replace
from pathlib import Path
from typing import TYPE_CHECKING

from flowguard.config.settings import DEFAULT_LLM_TIMEOUT_SECONDS
from flowguard.verify.diff_analyzer import DiffAnalyzer
from flowguard.verify.errors import (
    LanguageModelError,
    RuleExecutionError,
    VerificationCancelledError,
)
from flowguard.verify.feedback import (
    FeedbackGenerator,
    build_issue_message,
    classify_category,
    find_line_number,
    summarize,
)
from flowguard.verify.models import (
    ChangedFile,
    ChangeType,
    DiffAnalysis,
    DiffInput,
    DiffSource,
    Deviation,
    FileStatus,
    FixSuggestion,
    IssueCategory,
    Severity,
    SeverityRating,
    SpecMatchResult,
    Verification,
    VerificationInput,
    VerificationIssue,
)
from flowguard.verify.rules.base import (
    RuleRegistry,
    ValidationContext,
    VerificationRule,
)
from flowguard.verify.severity import RatingContext, SeverityOverride, SeverityRater
from flowguard.verify.spec_matcher import SpecMatcher
from flowguard.verify.storage import ArtifactStorage

if TYPE_CHECKING:
    from flowguard.config.settings import Settings
    from flowguard.llm.providers.base import LLMProvider

logger = logging.getLogger(__name__)

# File name used for issues that concern the diff as a whole
DIFF_FILE = "<diff>"

FileReader = Callable[[str], str]


@dataclass
class _RatedDeviation:
    result: SpecMatchResult
    deviation: Deviation
    rating: SeverityRating | None = None
    error: LanguageModelError | None = None


def _new_id() -> str:
    return str(uuid.uuid4())


def system_issue(
    message: str,
    file: str = DIFF_FILE,
    severity: Severity = Severity.MEDIUM,
    line: int | None = None,
    spec_requirement_id: str | None = None,
    rule_id: str | None = None,
) -> VerificationIssue:
    """Issue recording that part of the diff could not be verified."""
    return VerificationIssue(
        id=_new_id(),
        severity=severity,
        category=IssueCategory.SYSTEM,
        file=file,
        line=line,
        message=message,
        spec_requirement_id=spec_requirement_id,
        rule_id=rule_id,
    )


def reconstruct_file_content(file: ChangedFile) -> str:
    """Rebuild the post-change text of a file from its hunks.

    Lines outside the hunks are unknown and left blank so that line numbers
    match the real file.
    """
    lines: dict[int, str] = {
        change.line_number: change.content
        for change in file.changes
        if change.type != ChangeType.DELETION
    }
    if not lines:
        return ""
    last = max(lines)
    return "\n".join(lines.get(number, "") for number in range(1, last + 1))


def order_issues(
    issues: list[VerificationIssue],
    skip_low_severity: bool = False,
    max_issues: int | None = None,
) -> list[VerificationIssue]:
    """Apply the filtering options to a collected issue list.

    Issues are stably sorted by severity (Critical first) so ties keep the
    order they were produced in. Low issues are dropped before truncation.
    """
    ordered = sorted(issues, key=lambda issue: issue.severity.rank, reverse=True)
    if skip_low_severity:
        ordered = [issue for issue in ordered if issue.severity != Severity.LOW]
    if max_issues is not None:
        ordered = ordered[: max(0, max_issues)]
    return ordered


class VerificationEngine:
    """Verifies code changes against an epic's specs and the registered rules."""

    def __init__(
        self,
        provider: "LLMProvider",
        storage: ArtifactStorage,
        registry: RuleRegistry | None = None,
        *,
        llm_timeout: float = DEFAULT_LLM_TIMEOUT_SECONDS,
        max_concurrency: int = 4,
        rule_overrides: dict[str, bool] | None = None,
        file_reader: FileReader | None = None,
        severity_override: SeverityOverride | None = None,
    ) -> None:
        self.storage = storage
        self.registry = registry if registry is not None else RuleRegistry()
        self.max_concurrency = max(1, max_concurrency)
        self.rule_overrides = dict(rule_overrides or {})
        self.file_reader = file_reader
        self.analyzer = DiffAnalyzer()
        self.matcher = SpecMatcher(provider, storage, timeout=llm_timeout)
        self.rater = SeverityRater(
            provider, timeout=llm_timeout, override=severity_override
        )
        self.feedback = FeedbackGenerator(provider, timeout=llm_timeout)

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        workspace: Path,
        registry: RuleRegistry | None = None,
        provider: "LLMProvider | None" = None,
    ) -> "VerificationEngine":
        """Build an engine for a workspace from persisted settings."""
        if provider is None:
            from flowguard.config.paths import FlowguardPaths
            from flowguard.llm.metrics import Budget, MetricsCollector
            from flowguard.llm.providers import create_provider

            budget_usd = settings.llm_budget_usd
            collector = MetricsCollector(
                FlowguardPaths(workspace=workspace).metrics,
                budget=Budget(max_usd=budget_usd) if budget_usd else None,
            )
            provider = create_provider(settings, metrics_collector=collector)

        return cls(
            provider,
            ArtifactStorage(workspace),
            registry,
            llm_timeout=settings.llm_timeout_seconds,
            max_concurrency=settings.max_concurrency,
            rule_overrides=settings.rule_overrides(),
        )

    async def verify_changes(
        self,
        request: VerificationInput,
        cancel_event: threading.Event | None = None,
    ) -> Verification:
        """Verify a diff and persist the resulting record.

        Raises:
            StructuralError: If the diff cannot be parsed for its format.
            VerificationCancelledError: If ``cancel_event`` was set; nothing
                is persisted in that case.
        """

        def checkpoint(stage: str) -> None:
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Verification cancelled before %s", stage)
                raise VerificationCancelledError(stage)

        diff_input = request.diff_input
        options = request.options

        checkpoint("parse")
        analysis = self.analyzer.parse_diff(diff_input.content, diff_input.format)
        issues = self._input_issues(diff_input, analysis)
        semaphore = asyncio.Semaphore(self.max_concurrency)

        checkpoint("match")
        spec_ids = self._resolve_spec_ids(request)
        results: list[SpecMatchResult] = []
        if spec_ids:
            per_spec = await asyncio.gather(
                *(
                    self.matcher.match_changes_to_spec(analysis, spec_id, semaphore)
                    for spec_id in spec_ids
                )
            )
            results = [result for spec_results in per_spec for result in spec_results]
        else:
            issues.append(
                system_issue(
                    f"No applicable spec found for epic {request.epic_id}; "
                    "changes were not verified against requirements"
                )
            )

        pending: list[_RatedDeviation] = []
        for result in results:
            if result.system_error is not None:
                issues.extend(self._failed_match_issues(result))
            else:
                pending.extend(_RatedDeviation(result, d) for d in result.deviations)
        logger.info(
            "Matched %d specs: %d deviations to rate", len(spec_ids), len(pending)
        )

        checkpoint("rate")
        await asyncio.gather(*(self._rate(item, semaphore) for item in pending))

        checkpoint("feedback")
        issues.extend(
            await asyncio.gather(
                *(
                    self._deviation_issue(item, options.include_code_examples, semaphore)
                    for item in pending
                )
            )
        )

        checkpoint("rules")
        spec_content = "\n\n".join(
            content
            for content in (self.matcher.spec_content(s) for s in spec_ids)
            if content
        )
        issues.extend(await self._run_rules(analysis, spec_content))

        system_error_present = any(issue.is_system for issue in issues)
        final_issues = order_issues(
            issues, options.skip_low_severity, options.max_issues
        )
        summary = summarize(final_issues, system_error_present, options.auto_approve)

        checkpoint("persist")
        verification = Verification(
            id=_new_id(),
            epic_id=request.epic_id,
            diff_source=self._diff_source(diff_input),
            analysis=analysis,
            issues=final_issues,
            summary=summary,
        )
        self.storage.save_verification(verification)
        logger.info(
            "Verification %s: %d issues, %s",
            verification.id,
            summary.total_issues,
            summary.approval_status.value,
        )
        return verification

    def preview_fix(
        self, issue: VerificationIssue, context: ValidationContext
    ) -> str | None:
        """Return the content a rule's auto-fix would produce, without writing it."""
        if issue.rule_id is None:
            return None
        rule = self.registry.get(issue.rule_id)
        if rule is None or not rule.supports_auto_fix:
            return None
        return rule.auto_fix(issue, context)

    # --- Stages ---

    def _resolve_spec_ids(self, request: VerificationInput) -> list[str]:
        if request.spec_ids is not None:
            return list(request.spec_ids)
        return [spec.id for spec in self.storage.list_specs(request.epic_id)]

    def _input_issues(
        self, diff_input: DiffInput, analysis: DiffAnalysis
    ) -> list[VerificationIssue]:
        issues = [
            system_issue(f"Diff source error: {error}")
            for error in diff_input.adapter_errors
        ]
        issues.extend(
            system_issue(f"Diff parsing error: {error}")
            for error in analysis.parsing_errors
        )
        return issues

    def _failed_match_issues(
        self, result: SpecMatchResult
    ) -> list[VerificationIssue]:
        files = result.file_changes
        default_file = files[0].path if len(files) == 1 else DIFF_FILE
        return [
            system_issue(
                f"[{deviation.type.value.upper()}] {deviation.description}",
                file=deviation.file_path or default_file,
                severity=Severity.HIGH,
                spec_requirement_id=deviation.requirement_id,
            )
            for deviation in result.deviations
        ]

    async def _rate(
        self, item: _RatedDeviation, semaphore: asyncio.Semaphore
    ) -> None:
        file = self._file_for(item)
        context = RatingContext(
            file_path=item.deviation.file_path or (file.path if file else DIFF_FILE),
            change_type=file.status.value if file else FileStatus.MODIFIED.value,
            spec_content=self.matcher.spec_content(item.result.spec_id),
        )
        try:
            item.rating = await self.rater.rate(
                item.deviation, context, semaphore, spec_id=item.result.spec_id
            )
        except LanguageModelError as e:
            logger.warning("Severity rating failed: %s", e)
            item.error = e

    async def _deviation_issue(
        self,
        item: _RatedDeviation,
        include_code_examples: bool,
        semaphore: asyncio.Semaphore,
    ) -> VerificationIssue:
        deviation = item.deviation
        file = self._file_for(item)
        path = deviation.file_path or (file.path if file else DIFF_FILE)
        line = find_line_number(deviation, item.result.file_changes)

        if item.rating is None:
            return system_issue(
                f"[{deviation.type.value.upper()}] {deviation.description}\n"
                f"Severity rating failed: {item.error}",
                file=path,
                line=line,
                spec_requirement_id=deviation.requirement_id,
            )

        fix = await self.feedback.generate(
            deviation,
            item.rating,
            path,
            line,
            include_code_example=include_code_examples,
            semaphore=semaphore,
            spec_id=item.result.spec_id,
        )
        return VerificationIssue(
            id=_new_id(),
            severity=item.rating.severity,
            category=classify_category(item.rating.impact_areas),
            file=path,
            line=line,
            message=build_issue_message(deviation, item.rating),
            suggestion=fix.description or None,
            code=_code_at(file, line),
            spec_requirement_id=deviation.requirement_id,
            fix_suggestion=fix,
        )

    async def _run_rules(
        self, analysis: DiffAnalysis, spec_content: str
    ) -> list[VerificationIssue]:
        rules = self.registry.enabled_rules(self.rule_overrides)
        if not rules:
            return []

        jobs: list[tuple[VerificationRule, ValidationContext]] = []
        for file in analysis.changed_files:
            if file.status == FileStatus.DELETED:
                continue
            context = ValidationContext(
                file_path=file.path,
                file_content=self._read_file(file),
                file_changes=analysis.changed_files,
                spec_content=spec_content,
                workspace_root=self.storage.paths.workspace,
            )
            jobs.extend((rule, context) for rule in rules)

        logger.info("Running %d rules over %d jobs", len(rules), len(jobs))
        per_job = await asyncio.gather(
            *(asyncio.to_thread(self._apply_rule, rule, ctx) for rule, ctx in jobs)
        )
        return [issue for issues in per_job for issue in issues]

    def _apply_rule(
        self, rule: VerificationRule, context: ValidationContext
    ) -> list[VerificationIssue]:
        try:
            return self._normalize_rule_issues(rule, rule.validate(context))
        except Exception as e:
            error = RuleExecutionError(rule.id, e)
            logger.exception("Rule %s crashed on %s", rule.id, context.file_path)
            return [system_issue(str(error), file=context.file_path, rule_id=rule.id)]

    @staticmethod
    def _normalize_rule_issues(
        rule: VerificationRule, issues: object
    ) -> list[VerificationIssue]:
        if not isinstance(issues, list):
            raise TypeError(f"validate() returned {type(issues).__name__}, not a list")
        automated = rule.supports_auto_fix
        normalized: list[VerificationIssue] = []
        for issue in issues:
            if not isinstance(issue, VerificationIssue):
                raise TypeError(f"validate() returned a {type(issue).__name__} issue")
            normalized.append(
                replace(
                    issue,
                    rule_id=issue.rule_id or rule.id,
                    spec_requirement_id=None,
                    fix_suggestion=issue.fix_suggestion
                    or FixSuggestion(
                        description=issue.suggestion or issue.message,
                        automated_fix=automated,
                    ),
                )
            )
        return normalized

    # --- Helpers ---

    def _read_file(self, file: ChangedFile) -> str:
        if self.file_reader is not None:
            try:
                return self.file_reader(file.path)
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(
                    "Cannot read %s, using diff content instead: %s", file.path, e
                )
        return reconstruct_file_content(file)

    @staticmethod
    def _file_for(item: _RatedDeviation) -> ChangedFile | None:
        files = item.result.file_changes
        if item.deviation.file_path:
            for file in files:
                if file.path == item.deviation.file_path:
                    return file
        return files[0] if files else None

    def _diff_source(self, diff_input: DiffInput) -> DiffSource:
        metadata = diff_input.metadata
        if metadata is None:
            metadata = self.analyzer.extract_metadata(diff_input.content)
        return DiffSource.from_metadata(metadata)


def _code_at(file: ChangedFile | None, line: int | None) -> str | None:
    if file is None or line is None:
        return None
    for change in file.changes:
        if change.line_number == line and change.type != ChangeType.DELETION:
            return change.content
    return None
