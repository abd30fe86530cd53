"""Turn raw model feedback into comments anchored to lines of the diff.

Anything the model reports that cannot be tied to a line of the change set is
dropped here with a log entry. A bad line number from the model is routine,
not an error.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from prsage_core.diff import DiffAnalysis, resolve_line
from prsage_core.response import RawComment
from prsage_core.utils.code import fence_language

logger = logging.getLogger(__name__)

COMMENT_TYPES = ("suggestion", "issue", "praise", "question")
SEVERITIES = ("low", "medium", "high")

_TYPE_ALIASES = {
    "improvement": "suggestion",
    "refactor": "suggestion",
    "nitpick": "suggestion",
    "bug": "issue",
    "error": "issue",
    "problem": "issue",
    "security": "issue",
}
_SEVERITY_ALIASES = {
    "critical": "high",
    "major": "high",
    "minor": "low",
    "nitpick": "low",
    "info": "low",
}

_SEVERITY_BADGES = {
    "critical": ("🚨", "CRITICAL"),
    "high": ("⚠️", "HIGH"),
    "medium": ("📝", "MEDIUM"),
    "low": ("💡", "LOW"),
}

_CODE_MARKERS = ("\n", "{", ";", "=")


@dataclass
class ProcessedComment:
    file: str
    line: int
    resolved_line: int
    diff_position: int | None
    type: str
    severity: str
    raw_severity: str
    comment: str
    body: str
    suggestion: str | None = None
    category: str | None = None


@dataclass
class InlineComment:
    path: str
    line: int
    position: int
    body: str
    severity: str = "medium"


@dataclass
class GeneralComment:
    body: str


@dataclass
class SeparatedComments:
    inline: list[InlineComment] = field(default_factory=list)
    general: list[GeneralComment] = field(default_factory=list)


class FeedbackClassifier(ABC):
    """Infers a type and severity from free text when the model left them out."""

    @abstractmethod
    def classify(self, text: str) -> tuple[str | None, str | None]:
        """Return ``(type, severity)``; either may be None when undecided."""


class KeywordClassifier(FeedbackClassifier):
    """Keyword heuristic. Replaceable; not part of the stable contract."""

    HIGH = ("security", "injection", "vulnerab", "crash", "data loss", "leak", "race condition")
    MEDIUM = ("error handling", "exception", "null", "undefined", "performance", "duplicat")
    PRAISE = ("nice", "good job", "well done", "great", "clean")

    def classify(self, text: str) -> tuple[str | None, str | None]:
        lowered = text.lower()
        if text.rstrip().endswith("?"):
            return "question", "low"
        if any(word in lowered for word in self.HIGH):
            return "issue", "high"
        if any(word in lowered for word in self.MEDIUM):
            return "issue", "medium"
        if any(word in lowered for word in self.PRAISE):
            return "praise", "low"
        return None, None


def normalize_type(value: str | None) -> str:
    key = (value or "").strip().lower()
    if key in COMMENT_TYPES:
        return key
    return _TYPE_ALIASES.get(key, "suggestion")


def normalize_severity(value: str | None) -> str:
    key = (value or "").strip().lower()
    if key in SEVERITIES:
        return key
    return _SEVERITY_ALIASES.get(key, "medium")


def looks_like_code(text: str) -> bool:
    return any(marker in text for marker in _CODE_MARKERS)


class CommentProcessor:
    def __init__(self, classifier: FeedbackClassifier | None = None):
        self.classifier = classifier

    def process_comments(self, raw: list[RawComment], diff_analysis: DiffAnalysis) -> list[ProcessedComment]:
        """Validate, anchor and render model feedback. Pure: same input, same output."""
        processed: list[ProcessedComment] = []
        seen: set[tuple] = set()
        for comment in raw or []:
            result = self.process_comment(comment, diff_analysis)
            if result is None:
                continue
            key = (result.file, result.resolved_line, result.comment.strip())
            if key in seen:
                logger.debug("Dropping duplicate comment on %s:%d", result.file, result.resolved_line)
                continue
            seen.add(key)
            processed.append(result)
        return processed

    def process_comment(self, comment: RawComment, diff_analysis: DiffAnalysis) -> ProcessedComment | None:
        if not comment.file or comment.line is None:
            logger.warning("Dropping comment missing file or line: %r", comment)
            return None
        if not comment.comment.strip():
            logger.warning("Dropping empty comment on %s:%s", comment.file, comment.line)
            return None

        file_analysis = diff_analysis.files.get(comment.file)
        if file_analysis is None:
            logger.warning("Dropping comment for file not in diff: %s", comment.file)
            return None

        resolved = resolve_line(file_analysis, comment.line)
        if resolved is None:
            logger.warning("Dropping comment: could not map line %d in %s", comment.line, comment.file)
            return None

        type_, severity = comment.type, comment.severity
        if self.classifier is not None and (not type_ or not severity):
            guessed_type, guessed_severity = self.classifier.classify(comment.comment)
            type_ = type_ or guessed_type
            severity = severity or guessed_severity

        raw_severity = (severity or "medium").strip().lower()
        return ProcessedComment(
            file=comment.file,
            line=comment.line,
            resolved_line=resolved,
            diff_position=file_analysis.line_mapping[resolved].diff_position,
            type=normalize_type(type_),
            severity=normalize_severity(severity),
            raw_severity=raw_severity,
            comment=comment.comment.strip(),
            body=self.render_body(comment, raw_severity),
            suggestion=comment.suggestion,
            category=comment.category,
        )

    def render_body(self, comment: RawComment, severity: str) -> str:
        emoji, label = _SEVERITY_BADGES.get(severity, _SEVERITY_BADGES[normalize_severity(severity)])
        body = f"{emoji} **[{label}]** "
        if comment.category:
            body += f"*{comment.category}* - "
        body += comment.comment.strip()

        if comment.suggestion:
            if looks_like_code(comment.suggestion):
                suggestion = _strip_code_fence(comment.suggestion)
                body += f"\n\n**Suggested fix:**\n```{fence_language(comment.file)}\n{suggestion}\n```"
            else:
                body += f"\n\n**Suggestion:** {comment.suggestion}"

        if comment.context:
            body += f"\n\n📚 **Why this matters:** {comment.context}"
        return body

    def separate_comments(self, comments: list[ProcessedComment]) -> SeparatedComments:
        separated = SeparatedComments()
        for comment in comments:
            if comment.file and comment.resolved_line > 0 and comment.diff_position is not None:
                separated.inline.append(
                    InlineComment(
                        path=comment.file,
                        line=comment.resolved_line,
                        position=comment.diff_position,
                        body=comment.body,
                        severity=comment.severity,
                    )
                )
            else:
                separated.general.append(GeneralComment(body=self.format_general_comment(comment)))
        return separated

    def format_general_comment(self, comment: ProcessedComment) -> str:
        if not comment.file:
            return comment.body
        header = f"**File:** `{comment.file}`\n"
        if comment.line:
            header += f"**Line:** {comment.line}\n"
        return f"{header}\n{comment.body}"


def _strip_code_fence(text: str) -> str:
    # Models sometimes fence the suggestion themselves; avoid nesting fences.
    cleaned = re.sub(r"^```[\w+-]*\s*\n?", "", text.strip())
    return re.sub(r"\n?```$", "", cleaned)
