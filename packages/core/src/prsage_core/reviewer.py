"""Core PR review orchestration.

trigger_review() answers immediately with a review id; the review itself runs
as a background task on a thread pool. Inside one task the pipeline is
strictly sequential: chunks are sent to the completion service one after
another to stay under the provider's rate limits.
"""

from __future__ import annotations

import fnmatch
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import TYPE_CHECKING

from prsage_core.comments import CommentProcessor, FeedbackClassifier
from prsage_core.config import DEFAULT_CONFIG
from prsage_core.diff import DiffAnalysis, analyze_files
from prsage_core.errors import NotFoundError
from prsage_core.gh.posting import PostingOutcome, PostingStrategy, post_comments, post_general_comments
from prsage_core.gh.pull_request import fetch_pull_request, get_diff, to_info
from prsage_core.manager import ReviewManager, aggregate_chunks, combined_summary
from prsage_core.prompts import PromptBuilder
from prsage_core.utils.code import is_code_file

if TYPE_CHECKING:
    from prsage_core.providers.base import BaseModelClient
    from prsage_store.base import BaseStore
    from prsage_store.models import Review

logger = logging.getLogger(__name__)

NO_FILES_SUMMARY = "No reviewable files in this pull request."


def get_model_client(config: dict, guidelines: str = ""):
    provider = config["provider"]
    model = config.get("model_name")
    options = {"temperature": config.get("temperature"), "max_tokens": config.get("max_tokens")}
    if provider == "anthropic":
        from prsage_core.providers.anthropic import AnthropicModelClient

        return AnthropicModelClient(api_key=config["anthropic_api_key"], model=model, guidelines=guidelines, **options)
    if provider == "openai":
        from prsage_core.providers.openai import OpenAIModelClient

        return OpenAIModelClient(api_key=config["openai_api_key"], model=model, guidelines=guidelines, **options)
    raise ValueError(f"Unknown model provider: {provider!r}. Choose 'anthropic' or 'openai'.")


def _is_excluded(filename: str, patterns: list[str]) -> bool:
    """Return True if filename matches any exclude pattern.

    Supports:
    - fnmatch globs on the full path: "src/generated/*.py"
    - fnmatch globs on the basename: "*.lock", "*.min.js"
    - Directory names/prefixes: "migrations/", "tests" (matches any file within that tree)
    """
    for pattern in patterns:
        if fnmatch.fnmatch(filename, pattern):
            return True
        if fnmatch.fnmatch(filename.rsplit("/", 1)[-1], pattern):
            return True
        prefix = pattern.rstrip("/") + "/"
        if filename.startswith(prefix) or ("/" + prefix) in filename:
            return True
    return False


def reviewable_subset(diff_analysis: DiffAnalysis, exclude: list[str]) -> DiffAnalysis:
    names = [name for name in diff_analysis.files if is_code_file(name) and not _is_excluded(name, exclude)]
    skipped = len(diff_analysis.files) - len(names)
    if skipped:
        logger.info("Skipping %d excluded or non-code file(s)", skipped)
    return diff_analysis.subset(names)


class ReviewService:
    """Wires DiffAnalyzer → PromptBuilder → ModelClient → CommentProcessor → ReviewManager."""

    def __init__(
        self,
        github,
        model_client: BaseModelClient,
        store: BaseStore,
        config: dict | None = None,
        executor: ThreadPoolExecutor | None = None,
        strategies: list[PostingStrategy] | None = None,
        classifier: FeedbackClassifier | None = None,
    ):
        config = {**DEFAULT_CONFIG, **(config or {})}
        self.github = github
        self.client = model_client
        self.manager = ReviewManager(store)
        self.prompts = PromptBuilder(
            model=model_client.model,
            token_budget=config["token_budget"],
            chunk_size=config["chunk_size"],
            max_patch_chars=config["max_chars_per_file"],
        )
        self.comments = CommentProcessor(classifier)
        self.strategies = strategies
        self.max_retries = config["max_retries"]
        self.exclude = list(config["exclude"])
        self.post_comments = config["post_comments"]
        self._executor = executor or ThreadPoolExecutor(
            max_workers=config["max_workers"], thread_name_prefix="prsage-review"
        )
        self._tasks: dict[str, Future] = {}

    def trigger_review(self, repo: str, pr_number: int, is_rereview: bool = False) -> str:
        """Start a review in the background and return its id without waiting.

        A missing repository or pull request still yields an id: the review
        is recorded as failed so the caller's poll reports why.
        """
        try:
            _, pr = fetch_pull_request(self.github, repo, pr_number)
        except NotFoundError as e:
            return self.manager.create_failed_review(repo, pr_number, str(e))

        review_id, prior = self.manager.initialize_review(repo, pr_number, is_rereview)
        future = self._executor.submit(self.run_review, repo, pr, review_id, is_rereview, prior)
        self._tasks[review_id] = future
        future.add_done_callback(lambda _: self._tasks.pop(review_id, None))
        return review_id

    def wait(self, review_id: str, timeout: float | None = None) -> None:
        """Block until a triggered review's task has finished (no-op for unknown or finished ids)."""
        future = self._tasks.get(review_id)
        if future is not None:
            future.result(timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def run_review(
        self,
        repo: str,
        pr,
        review_id: str,
        is_rereview: bool = False,
        prior_review: Review | None = None,
    ) -> Review | None:
        """Task body. Every error ends up on the review record, never with the caller."""
        try:
            return self._run(repo, pr, review_id, is_rereview, prior_review)
        except Exception as e:
            logger.exception("Review %s for %s#%s failed", review_id, repo, pr.number)
            self.manager.mark_failed(repo, pr.number, review_id, str(e) or type(e).__name__)
            return None

    def _run(self, repo: str, pr, review_id: str, is_rereview: bool, prior_review: Review | None) -> Review:
        info = to_info(repo, pr)
        diff_analysis = analyze_files(get_diff(pr))
        reviewable = reviewable_subset(diff_analysis, self.exclude)

        if not reviewable.files:
            return self.manager.complete_review(repo, info.number, review_id, NO_FILES_SUMMARY, [], None)

        if self.prompts.needs_chunking(reviewable):
            logger.info("Large PR detected, using chunked review")
            requests = self.prompts.build_chunked_prompts(reviewable, info, is_rereview, prior_review)
        else:
            requests = [self.prompts.build_prompt(reviewable, info, is_rereview, prior_review)]

        responses = []
        for request in requests:
            if request.total_chunks > 1:
                logger.info("Processing chunk %d/%d", request.chunk_index + 1, request.total_chunks)
            responses.append(self.client.analyze_with_retry(request.prompt, self.max_retries))

        if len(responses) == 1:
            analysis = responses[0]
            processed = self.comments.process_comments(analysis.comments, reviewable)
            summary = analysis.summary
        else:
            analysis = aggregate_chunks(responses)
            processed = self.comments.process_comments(analysis.comments, reviewable)
            summary = combined_summary(analysis.summary, processed)

        outcome = PostingOutcome()
        if self.post_comments:
            separated = self.comments.separate_comments(processed)
            outcome = post_comments(pr, separated.inline, self.strategies).merge(
                post_general_comments(pr, separated.general)
            )

        return self.manager.complete_review(
            repo,
            info.number,
            review_id,
            summary,
            processed,
            analysis.metrics,
            posted=outcome.posted,
            failed=outcome.failed,
        )
