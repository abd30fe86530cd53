"""Unified-diff parsing and new-file line → diff position mapping.

GitHub can address a review comment either by new-file line number or by its
legacy "position": the number of lines below the first @@ header of the file's
patch. Positions are cumulative across hunks, and every hunk header after the
first one consumes a position too, so the position of any patch line is
simply its 0-based index in the patch text.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

_HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")

# How far (in new-file lines) a comment may drift from a mapped line and
# still be anchored to it.
LINE_TOLERANCE = 5

ADDITION = "addition"
DELETION = "deletion"
CONTEXT = "context"
OTHER = "other"


@dataclass
class DiffLine:
    content: str  # raw patch line, prefix included
    type: str
    position: int


@dataclass
class Hunk:
    old_start: int
    old_lines: int
    new_start: int
    new_lines: int
    header_position: int
    lines: list[DiffLine] = field(default_factory=list)


@dataclass
class LineEntry:
    """Where a single new-file line sits in the patch."""

    diff_position: int
    type: str  # "addition" | "context"
    content: str
    old_line: int | None = None


@dataclass
class FileAnalysis:
    filename: str
    status: str = "modified"
    additions: int = 0
    deletions: int = 0
    changes: int = 0
    patch: str | None = None
    hunks: list[Hunk] = field(default_factory=list)
    line_mapping: dict[int, LineEntry] = field(default_factory=dict)


@dataclass
class DiffStatistics:
    total_files: int = 0
    total_additions: int = 0
    total_deletions: int = 0
    total_changes: int = 0


@dataclass
class DiffAnalysis:
    """Every changed file of a pull request, keyed by filename in API order."""

    files: dict[str, FileAnalysis] = field(default_factory=dict)
    statistics: DiffStatistics = field(default_factory=DiffStatistics)

    def subset(self, filenames: list[str]) -> DiffAnalysis:
        """Return a DiffAnalysis restricted to ``filenames`` with recomputed totals."""
        files = {name: self.files[name] for name in filenames if name in self.files}
        return DiffAnalysis(files=files, statistics=_statistics(files.values()))


def _field(obj, name: str, default=None):
    # Changed files arrive either as PyGithub File objects or as plain dicts.
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _statistics(files) -> DiffStatistics:
    stats = DiffStatistics()
    for f in files:
        stats.total_files += 1
        stats.total_additions += f.additions
        stats.total_deletions += f.deletions
        stats.total_changes += f.changes
    return stats


def line_type(line: str) -> str:
    if line.startswith("+"):
        return ADDITION
    if line.startswith("-"):
        return DELETION
    if line.startswith(" "):
        return CONTEXT
    return OTHER


def parse_hunks(patch: str) -> list[Hunk]:
    """Split a patch into hunks.

    Lines that follow a malformed @@ header belong to no hunk until the next
    valid header, so they never produce a mapping. Only newlines end a line;
    form feeds and Unicode separators inside source lines are content.
    """
    hunks: list[Hunk] = []
    current: Hunk | None = None

    lines = patch.split("\n")
    if lines and lines[-1] == "":
        lines.pop()

    for index, line in enumerate(lines):
        line = line.removesuffix("\r")
        if line.startswith("@@"):
            match = _HUNK_HEADER_RE.match(line)
            if match is None:
                logger.warning("Skipping malformed hunk header at patch line %d: %r", index, line[:80])
                current = None
                continue
            old_start, old_lines, new_start, new_lines = match.groups()
            current = Hunk(
                old_start=int(old_start),
                old_lines=int(old_lines) if old_lines is not None else 1,
                new_start=int(new_start),
                new_lines=int(new_lines) if new_lines is not None else 1,
                header_position=index,
            )
            hunks.append(current)
        elif current is not None:
            current.lines.append(DiffLine(content=line, type=line_type(line), position=index))

    return hunks


def build_line_mapping(hunks: list[Hunk]) -> dict[int, LineEntry]:
    mapping: dict[int, LineEntry] = {}
    for hunk in hunks:
        old_line = hunk.old_start
        new_line = hunk.new_start
        diff_position = hunk.header_position
        for line in hunk.lines:
            diff_position += 1
            if line.type == ADDITION:
                mapping[new_line] = LineEntry(diff_position, ADDITION, line.content)
                new_line += 1
            elif line.type == DELETION:
                old_line += 1
            elif line.type == CONTEXT:
                mapping[new_line] = LineEntry(diff_position, CONTEXT, line.content, old_line)
                old_line += 1
                new_line += 1
    return mapping


def analyze_file(file) -> FileAnalysis:
    analysis = FileAnalysis(
        filename=_field(file, "filename", ""),
        status=_field(file, "status", "modified") or "modified",
        additions=_field(file, "additions", 0) or 0,
        deletions=_field(file, "deletions", 0) or 0,
        changes=_field(file, "changes", 0) or 0,
        patch=_field(file, "patch"),
    )
    if not analysis.patch or not isinstance(analysis.patch, str):
        logger.warning("No patch for %s (binary or too large); it will have no line mapping", analysis.filename)
        analysis.patch = None
        return analysis

    analysis.hunks = parse_hunks(analysis.patch)
    analysis.line_mapping = build_line_mapping(analysis.hunks)
    return analysis


def analyze_files(files) -> DiffAnalysis:
    """Analyze every changed file of a pull request."""
    analyzed = [analyze_file(f) for f in files]
    return DiffAnalysis(
        files={a.filename: a for a in analyzed},
        statistics=_statistics(analyzed),
    )


def resolve_line(file_analysis: FileAnalysis, line: int, tolerance: int = LINE_TOLERANCE) -> int | None:
    """Return the mapped new-file line to anchor ``line`` to, or None.

    Exact matches win; otherwise the nearest mapped line within ``tolerance``.
    Ties go to the lower line number.
    """
    mapping = file_analysis.line_mapping
    if line in mapping:
        return line
    if not mapping:
        return None
    nearest = min(sorted(mapping), key=lambda candidate: abs(candidate - line))
    if abs(nearest - line) <= tolerance:
        logger.info("Line %d not in diff of %s, using nearby line %d", line, file_analysis.filename, nearest)
        return nearest
    return None


def find_diff_position(file_analysis: FileAnalysis, line: int, tolerance: int = LINE_TOLERANCE) -> int | None:
    resolved = resolve_line(file_analysis, line, tolerance)
    if resolved is None:
        return None
    return file_analysis.line_mapping[resolved].diff_position


def get_line_content(file_analysis: FileAnalysis, line: int) -> str | None:
    """Return the source text of a new-file line without its diff prefix."""
    entry = file_analysis.line_mapping.get(line)
    if entry is None:
        return None
    return entry.content[1:]


def is_line_in_new_file(file_analysis: FileAnalysis, line: int) -> bool:
    return line in file_analysis.line_mapping
