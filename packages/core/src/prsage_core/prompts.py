"""Analysis-request construction under a per-model token budget.

A request is self-contained: change metadata, instructions for turning hunk
headers into new-file line numbers, the changed files themselves, and the
strict JSON schema the model must answer with. Large change sets are split
into chunks that each carry the full PR metadata but only a subset of files,
and share one output schema so their results merge uniformly.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from prsage_core.diff import ADDITION, DiffAnalysis, FileAnalysis

if TYPE_CHECKING:
    from prsage_core.gh.pull_request import PullRequestInfo
    from prsage_store.models import Review

logger = logging.getLogger(__name__)

# Context window sizes in tokens. Unknown models fall back to the smallest.
TOKEN_LIMITS: dict[str, int] = {
    "gpt-3.5-turbo": 4096,
    "gpt-3.5-turbo-1106": 16385,
    "gpt-4": 8192,
    "gpt-4-32k": 32768,
    "gpt-4-turbo": 128000,
    "gpt-4o": 128000,
    "gpt-4o-mini": 128000,
    "claude-sonnet-4-20250514": 200000,
    "claude-3-5-haiku-latest": 200000,
}
DEFAULT_TOKEN_LIMIT = 4096

# Fraction of the budget a prompt may fill before we chunk or stop adding files.
BUDGET_FILL_RATIO = 0.8

# Characters added to the raw patch total to account for instructions and schema.
PROMPT_OVERHEAD_CHARS = 2000

DEFAULT_CHUNK_SIZE = 5
_DESCRIPTION_CHAR_LIMIT = 200
_REFERENCE_LINE_LIMIT = 5

OMITTED_NOTICE = "\n... (additional files omitted due to length)\n"

_LINE_COUNTING_GUIDE = """\
HOW TO READ DIFFS AND COUNT LINE NUMBERS:
1. A hunk header looks like "@@ -old_start,old_count +new_start,new_count @@".
2. The number after "+" is the new-file line number of the first line below the header.
3. Lines starting with "+" are additions: they exist in the new file, count them.
4. Lines starting with "-" are deletions: they do not exist in the new file, skip them.
5. Lines starting with a space are unchanged context: count them.
6. Every "line" you report must be a new-file line number counted this way.

Example:
@@ -1,3 +1,5 @@
+import os              <- line 1
+import sys             <- line 2
 def main():            <- line 3
-    print("old")       <- (deleted, no line number)
+    print("new")       <- line 4
     return 0           <- line 5
"""

_SEVERITY_GUIDE = """\
SEVERITY GUIDELINES:
- critical: security vulnerability, data loss risk, crash
- high: logic bug, significant performance problem, resource leak
- medium: missing error handling, duplication, poor practice
- low: style, naming, minor optimisation
"""

_RESPONSE_FORMAT = """\
RESPONSE FORMAT:
Respond with exactly one JSON object and nothing else:
{
  "summary": "<concise summary of findings>",
  "comments": [
    {
      "file": "<exact file path as shown above>",
      "line": <new-file line number (integer)>,
      "type": "<issue|suggestion|praise|question>",
      "severity": "<critical|high|medium|low>",
      "comment": "<clear description of the finding>",
      "suggestion": "<optional: concrete code showing the fix>"
    }
  ],
  "metrics": {
    "readability": <1-10>,
    "maintainability": <1-10>,
    "security": <1-10>,
    "performance": <1-10>,
    "testCoverage": <1-10>,
    "architecturalQuality": <1-10>
  }
}

Rules:
- Use the EXACT new-file line number where the code appears.
- Only comment on files listed above.
- If there is nothing to report, return an empty "comments" array.
"""


@dataclass
class AnalysisRequest:
    prompt: str
    files: list[str] = field(default_factory=list)
    chunk_index: int = 0
    total_chunks: int = 1
    is_rereview: bool = False
    estimated_tokens: int = 0


def estimate_tokens(text: str) -> int:
    """Rough token count: four characters per token."""
    return math.ceil(len(text) / 4)


class PromptBuilder:
    def __init__(
        self,
        model: str = "gpt-3.5-turbo",
        token_budget: int | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_patch_chars: int = 20000,
    ):
        self.model = model
        self.token_budget = token_budget or TOKEN_LIMITS.get(model, DEFAULT_TOKEN_LIMIT)
        self.chunk_size = max(1, chunk_size)
        self.max_patch_chars = max_patch_chars

    # ------------------------------------------------------------------ #
    # Sizing                                                               #
    # ------------------------------------------------------------------ #

    def estimate_full_prompt_tokens(self, diff_analysis: DiffAnalysis) -> int:
        total_chars = sum(len(f.patch) for f in diff_analysis.files.values() if f.patch)
        return math.ceil((total_chars + PROMPT_OVERHEAD_CHARS) / 4)

    def needs_chunking(self, diff_analysis: DiffAnalysis) -> bool:
        return self.estimate_full_prompt_tokens(diff_analysis) > self.token_budget * BUDGET_FILL_RATIO

    # ------------------------------------------------------------------ #
    # Requests                                                             #
    # ------------------------------------------------------------------ #

    def build_prompt(
        self,
        diff_analysis: DiffAnalysis,
        pull_request: PullRequestInfo,
        is_rereview: bool = False,
        prior_review: Review | None = None,
    ) -> AnalysisRequest:
        header = self._build_essential(pull_request, diff_analysis, is_rereview, prior_review)
        return self._assemble(header, diff_analysis, is_rereview)

    def build_chunked_prompts(
        self,
        diff_analysis: DiffAnalysis,
        pull_request: PullRequestInfo,
        is_rereview: bool = False,
        prior_review: Review | None = None,
    ) -> list[AnalysisRequest]:
        names = list(diff_analysis.files)
        groups = [names[i : i + self.chunk_size] for i in range(0, len(names), self.chunk_size)]
        total = len(groups)
        requests = []
        for index, group in enumerate(groups):
            marker = (
                f"Reviewing chunk {index + 1} of {total} for PR: {pull_request.title}\n"
                f"This chunk covers {len(group)} of {len(names)} changed files. "
                "Only comment on the files in this chunk.\n\n"
            )
            # Metadata describes the whole PR; only the file section is narrowed.
            header = marker + self._build_essential(pull_request, diff_analysis, is_rereview, prior_review)
            request = self._assemble(header, diff_analysis.subset(group), is_rereview)
            request.chunk_index = index
            request.total_chunks = total
            requests.append(request)
        logger.info("Split %d file(s) into %d chunk(s) of up to %d", len(names), total, self.chunk_size)
        return requests

    def _assemble(self, header: str, diff_analysis: DiffAnalysis, is_rereview: bool) -> AnalysisRequest:
        remaining = self.token_budget - estimate_tokens(header) - estimate_tokens(_RESPONSE_FORMAT)
        file_section, included = self.build_file_section(diff_analysis, remaining)
        prompt = f"{header}{file_section}\n{_RESPONSE_FORMAT}"
        tokens = estimate_tokens(prompt)
        logger.info("Built prompt with estimated %d tokens for model %s", tokens, self.model)
        return AnalysisRequest(prompt=prompt, files=included, is_rereview=is_rereview, estimated_tokens=tokens)

    # ------------------------------------------------------------------ #
    # Sections                                                             #
    # ------------------------------------------------------------------ #

    def _build_essential(
        self,
        pull_request: PullRequestInfo,
        diff_analysis: DiffAnalysis,
        is_rereview: bool,
        prior_review: Review | None,
    ) -> str:
        stats = diff_analysis.statistics
        description = (pull_request.description or "").strip()
        if len(description) > _DESCRIPTION_CHAR_LIMIT:
            description = description[:_DESCRIPTION_CHAR_LIMIT] + "..."

        sections = [
            "You are a senior software engineer reviewing a pull request. Be precise and helpful.\n",
            f"PR: {pull_request.title}",
            f"Description: {description or 'None'}",
            f"Changes: {stats.total_files} files, +{stats.total_additions} -{stats.total_deletions}\n",
        ]
        if is_rereview:
            sections.append(self.build_rereview_section(prior_review))
        sections.append(_LINE_COUNTING_GUIDE)
        sections.append(_SEVERITY_GUIDE)
        return "\n".join(sections)

    def build_rereview_section(self, prior_review: Review | None) -> str:
        """Checklist of the previous review's unresolved, non-low feedback."""
        lines = ["This is a RE-REVIEW. Check whether previous issues were fixed."]
        if prior_review is None:
            return "\n".join(lines) + "\n"
        open_items = [f for f in prior_review.feedback if f.severity != "low"]
        if open_items:
            lines.append(f"\nPREVIOUS REVIEW CHECKLIST ({len(open_items)} item(s) to verify):")
            for item in open_items:
                lines.append(f"- [ ] {item.path}:{item.line} [{item.severity}/{item.type}] {item.comment}")
            lines.append(
                "For each checklist item still present in the new code, report it again; "
                "do not report items that were fixed."
            )
        return "\n".join(lines) + "\n"

    def build_file_section(self, diff_analysis: DiffAnalysis, token_budget: int) -> tuple[str, list[str]]:
        """Render files largest-change first until the budget is nearly used."""
        section = "\nFILE CHANGES:\n"
        included: list[str] = []
        ordered = sorted(diff_analysis.files.values(), key=lambda f: f.changes or f.additions + f.deletions, reverse=True)
        for analysis in ordered:
            if estimate_tokens(section) > token_budget * BUDGET_FILL_RATIO:
                section += OMITTED_NOTICE
                logger.warning(
                    "Prompt budget reached; omitted %d of %d file(s)",
                    len(ordered) - len(included),
                    len(ordered),
                )
                break
            section += self._render_file(analysis)
            included.append(analysis.filename)
        return section, included

    def _render_file(self, analysis: FileAnalysis) -> str:
        section = f"\n{analysis.filename} ({analysis.status}, +{analysis.additions} -{analysis.deletions}):\n"
        if not analysis.patch:
            return section + "(no textual diff available)\n"
        patch = analysis.patch
        if len(patch) > self.max_patch_chars:
            patch = patch[: self.max_patch_chars] + "\n... (truncated)"
        section += f"```diff\n{patch}\n```\n"
        return section + self.line_number_reference(analysis)

    def line_number_reference(self, analysis: FileAnalysis) -> str:
        """Anchor points that help the model count lines: hunk starts and the first added lines."""
        if not analysis.hunks:
            return ""
        lines = ["Line number reference:"]
        for hunk in analysis.hunks:
            lines.append(f"- Section starts at new line {hunk.new_start} ({hunk.new_lines} line(s))")
        added = [(n, e) for n, e in sorted(analysis.line_mapping.items()) if e.type == ADDITION]
        for number, entry in added[:_REFERENCE_LINE_LIMIT]:
            code = entry.content[1:].strip()
            if code:
                lines.append(f"- Line {number}: {code[:40]}")
        return "\n".join(lines) + "\n"
