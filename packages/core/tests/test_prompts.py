"""Tests for analysis-request construction and chunking."""

from prsage_core.diff import analyze_files
from prsage_core.gh.pull_request import PullRequestInfo
from prsage_core.prompts import OMITTED_NOTICE, PromptBuilder, estimate_tokens
from prsage_store.models import FeedbackItem, Review

PR = PullRequestInfo(repo="owner/repo", number=7, title="Add login flow", description="Implements OAuth login.")


def make_diff(count=1, patch_lines=3, prefix="src/file"):
    files = []
    for i in range(count):
        body = "\n".join(f"+line {n} of file {i}" for n in range(1, patch_lines + 1))
        files.append(
            {
                "filename": f"{prefix}{i}.py",
                "status": "modified",
                "additions": patch_lines,
                "deletions": 0,
                "changes": patch_lines + i,
                "patch": f"@@ -0,0 +1,{patch_lines} @@\n{body}",
            }
        )
    return analyze_files(files)


class TestSizing:
    def test_estimate_tokens_rounds_up(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens("abcde") == 2

    def test_full_prompt_estimate_includes_overhead(self):
        diff = analyze_files([{"filename": "a.py", "patch": "x" * 400}])
        assert PromptBuilder().estimate_full_prompt_tokens(diff) == (400 + 2000) // 4

    def test_needs_chunking_false_for_small_diff(self):
        builder = PromptBuilder(model="gpt-4o")
        assert builder.needs_chunking(make_diff(3)) is False

    def test_needs_chunking_true_above_budget(self):
        # 10,000 patch chars + 2,000 overhead = 3,000 tokens > 0.8 * 3,000
        diff = analyze_files([{"filename": "big.py", "patch": "x" * 10000}])
        assert PromptBuilder(token_budget=3000).needs_chunking(diff) is True

    def test_unknown_model_uses_default_budget(self):
        assert PromptBuilder(model="some-new-model").token_budget == 4096
        assert PromptBuilder(model="gpt-4o").token_budget == 128000
        assert PromptBuilder(model="gpt-4o", token_budget=1000).token_budget == 1000


class TestBuildPrompt:
    def test_contains_metadata_guide_files_and_schema(self):
        request = PromptBuilder(model="gpt-4o").build_prompt(make_diff(2), PR)
        assert "PR: Add login flow" in request.prompt
        assert "Implements OAuth login." in request.prompt
        assert "Changes: 2 files, +6 -0" in request.prompt
        assert "HOW TO READ DIFFS" in request.prompt
        assert "src/file0.py (modified, +3 -0)" in request.prompt
        assert '"metrics"' in request.prompt
        assert request.files == ["src/file1.py", "src/file0.py"]
        assert request.total_chunks == 1
        assert request.estimated_tokens == estimate_tokens(request.prompt)

    def test_long_description_is_truncated(self):
        pr = PullRequestInfo(repo="o/r", number=1, title="t", description="d" * 500)
        prompt = PromptBuilder(model="gpt-4o").build_prompt(make_diff(1), pr).prompt
        assert "d" * 200 + "..." in prompt
        assert "d" * 201 not in prompt

    def test_files_sorted_by_changes_descending(self):
        prompt = PromptBuilder(model="gpt-4o").build_prompt(make_diff(3), PR).prompt
        assert prompt.index("src/file2.py") < prompt.index("src/file1.py") < prompt.index("src/file0.py")

    def test_line_number_reference_lists_added_lines(self):
        prompt = PromptBuilder(model="gpt-4o").build_prompt(make_diff(1), PR).prompt
        assert "Section starts at new line 1 (3 line(s))" in prompt
        assert "- Line 1: line 1 of file 0" in prompt

    def test_file_without_patch_is_marked(self):
        diff = analyze_files([{"filename": "blob.py", "status": "added"}])
        prompt = PromptBuilder(model="gpt-4o").build_prompt(diff, PR).prompt
        assert "(no textual diff available)" in prompt

    def test_oversized_patch_is_truncated(self):
        diff = analyze_files([{"filename": "a.py", "patch": "@@ -0,0 +1 @@\n+" + "y" * 500}])
        prompt = PromptBuilder(model="gpt-4o", max_patch_chars=100).build_prompt(diff, PR).prompt
        assert "... (truncated)" in prompt
        assert "y" * 200 not in prompt

    def test_files_omitted_when_budget_runs_out(self):
        request = PromptBuilder(model="gpt-4o", token_budget=1500).build_prompt(make_diff(40, patch_lines=20), PR)
        assert OMITTED_NOTICE.strip() in request.prompt
        assert 0 < len(request.files) < 40


class TestChunkedPrompts:
    def test_partitions_files_in_order(self):
        diff = make_diff(12)
        requests = PromptBuilder(model="gpt-4o", chunk_size=5).build_chunked_prompts(diff, PR)
        assert [r.total_chunks for r in requests] == [3, 3, 3]
        assert [r.chunk_index for r in requests] == [0, 1, 2]
        assert sorted(requests[0].files) == [f"src/file{i}.py" for i in range(5)]
        assert sorted(requests[2].files) == ["src/file10.py", "src/file11.py"]

    def test_each_chunk_carries_marker_and_full_metadata(self):
        requests = PromptBuilder(model="gpt-4o", chunk_size=5).build_chunked_prompts(make_diff(12), PR)
        assert "Reviewing chunk 2 of 3 for PR: Add login flow" in requests[1].prompt
        assert "Changes: 12 files" in requests[1].prompt
        assert "src/file0.py" not in requests[1].prompt


class TestRereview:
    def make_prior(self):
        return Review(
            review_id="review-prior",
            repo="owner/repo",
            pr_number=7,
            status="completed",
            feedback=[
                FeedbackItem(path="src/a.py", line=3, comment="SQL injection risk", type="issue", severity="high"),
                FeedbackItem(path="src/b.py", line=10, comment="Missing error handling", type="issue"),
                FeedbackItem(path="src/c.py", line=4, comment="Rename variable", severity="low"),
                FeedbackItem(path="src/d.py", line=8, comment="Unclosed file handle", severity="high"),
            ],
        )

    def test_rereview_prompt_lists_prior_findings(self):
        request = PromptBuilder(model="gpt-4o").build_prompt(make_diff(1), PR, True, self.make_prior())
        assert request.is_rereview is True
        assert "RE-REVIEW" in request.prompt
        assert "PREVIOUS REVIEW CHECKLIST (3 item(s) to verify)" in request.prompt
        assert "- [ ] src/a.py:3 [high/issue] SQL injection risk" in request.prompt
        assert "src/b.py:10" in request.prompt
        assert "src/d.py:8" in request.prompt

    def test_low_severity_findings_are_not_listed(self):
        prompt = PromptBuilder(model="gpt-4o").build_prompt(make_diff(1), PR, True, self.make_prior()).prompt
        assert "Rename variable" not in prompt

    def test_rereview_without_prior_review(self):
        prompt = PromptBuilder(model="gpt-4o").build_prompt(make_diff(1), PR, True, None).prompt
        assert "RE-REVIEW" in prompt
        assert "CHECKLIST" not in prompt

    def test_first_review_has_no_rereview_section(self):
        prompt = PromptBuilder(model="gpt-4o").build_prompt(make_diff(1), PR).prompt
        assert "RE-REVIEW" not in prompt
