"""Batch and branch summarization with map-reduce for oversized diffs.

Per batch:

    fits the primary provider's budget?
      yes → one structured call: {highLevelSummary, fileSummaries: [{file, summary}]}
      no  → MAP:    split the diff into hunk-aligned chunks, summarize each as text
            REDUCE: one structured call over the joined chunk summaries

Every call goes through the RetryPolicy, so malformed JSON is retried and a
context-length error is retried once on the fallback provider. A batch whose
calls never produce usable output contributes nothing; only transport errors
escape, and the pipeline turns those into an aborted branch.

Per branch, a final reduce turns all file summaries into one narrative. That
call is allowed to fail: the branch then gets a static narrative instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from codefeed_core.errors import ContextLengthError, ProviderError, StructuredResponseError
from codefeed_core.retry import RetryPolicy
from codefeed_core.structured import parse_json_object, require_text
from codefeed_core.utils.chunking import chunk_files, estimate_tokens, split_diff_into_chunks
from codefeed_store.models import FileSummary

logger = logging.getLogger(__name__)

# Room left in the budget for the instructions wrapped around each chunk.
PROMPT_RESERVE_TOKENS = 500

CHUNK_SEPARATOR = "\n\n---\n\n"

FINAL_SUMMARY_FAILED = "Could not generate a final high-level summary."
NO_FILE_SUMMARIES = "No file summaries were produced for this branch."

_OUTPUT_FORMAT = """### Output Format:
Respond with **only** a valid JSON object:

{
  "highLevelSummary": "<what changed across these files and why>",
  "fileSummaries": [
    { "file": "<path exactly as listed above>", "summary": "<concise summary of this file's changes>" }
  ]
}

Include one entry in "fileSummaries" for every listed file.
Do not return any text outside the JSON object."""


@dataclass
class BatchResult:
    high_level_summary: str
    file_summaries: list[FileSummary] = field(default_factory=list)


def parse_batch_response(raw: str, files: Sequence[str]) -> BatchResult:
    """Validate a structured batch answer.

    Entries without string ``file``/``summary`` fields, or naming a file that
    is not part of the batch, are dropped. Duplicate entries keep the first.
    """
    data = parse_json_object(raw, required=("highLevelSummary", "fileSummaries"))
    high_level = data["highLevelSummary"]
    entries = data["fileSummaries"]
    if not isinstance(high_level, str) or not high_level.strip():
        raise StructuredResponseError("'highLevelSummary' must be a non-empty string")
    if not isinstance(entries, list):
        raise StructuredResponseError("'fileSummaries' must be a list")

    wanted = set(files)
    summaries: dict[str, FileSummary] = {}
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        file_name, summary = entry.get("file"), entry.get("summary")
        if not isinstance(file_name, str) or not isinstance(summary, str):
            continue
        if file_name not in wanted:
            logger.debug("Dropping summary for %s: not in this batch", file_name)
            continue
        summaries.setdefault(file_name, FileSummary(file=file_name, summary=summary.strip()))

    return BatchResult(high_level_summary=high_level.strip(), file_summaries=list(summaries.values()))


class Summarizer:
    def __init__(self, provider, fallback_provider=None, policy: RetryPolicy | None = None):
        self.provider = provider
        self.fallback_provider = fallback_provider
        base = policy or RetryPolicy()
        self.policy = base.with_fallback(fallback_provider.generate if fallback_provider is not None else None)

    @property
    def budget(self) -> int:
        return self.provider.context_budget

    # ------------------------------------------------------------------ #
    # Batches                                                              #
    # ------------------------------------------------------------------ #

    def summarize_batch(self, diff: str, branch: str, files: Sequence[str]) -> BatchResult | None:
        """Summarize one batch's diff; None when the batch produced nothing usable.

        Raises ProviderTransportError (or other non-context provider errors),
        which abort the branch.
        """
        try:
            if estimate_tokens(diff) > self.budget:
                return self._map_reduce(diff, branch, files)
            prompt = build_batch_prompt(diff, branch, files)
            result = self._structured(prompt, files)
        except ContextLengthError as e:
            logger.warning("Batch %s still too large after fallback, skipping: %s", ", ".join(files), e)
            return None

        if result is None:
            logger.warning("No usable summary for batch: %s", ", ".join(files))
        return result

    def _map_reduce(self, diff: str, branch: str, files: Sequence[str]) -> BatchResult | None:
        chunk_budget = max(self.budget - PROMPT_RESERVE_TOKENS, 1)
        chunks = split_diff_into_chunks(diff, chunk_budget)
        logger.info(
            "Diff for %d file(s) is ~%d tokens (budget %d); summarizing %d chunk(s).",
            len(files),
            estimate_tokens(diff),
            self.budget,
            len(chunks),
        )

        chunk_summaries = []
        for i, (chunk, chunk_paths) in enumerate(zip(chunks, chunk_files(chunks)), 1):
            logger.debug("Summarizing chunk %d of %d", i, len(chunks))
            prompt = build_chunk_prompt(chunk, branch, files, i, len(chunks), chunk_paths)
            try:
                summary = self.policy.execute(self.provider.generate, prompt, require_text)
            except ContextLengthError as e:
                logger.warning("Chunk %d of %d too large even for the fallback, skipping: %s", i, len(chunks), e)
                continue
            if summary is None:
                logger.warning("Chunk %d of %d produced no summary; continuing without it.", i, len(chunks))
                continue
            chunk_summaries.append(summary)

        if not chunk_summaries:
            return None

        prompt = build_reduce_prompt(CHUNK_SEPARATOR.join(chunk_summaries), branch, files)
        return self._structured(prompt, files)

    def _structured(self, prompt: str, files: Sequence[str]) -> BatchResult | None:
        return self.policy.execute(self.provider.generate, prompt, lambda raw: parse_batch_response(raw, files))

    # ------------------------------------------------------------------ #
    # Branch                                                               #
    # ------------------------------------------------------------------ #

    def final_summary(self, file_summaries: Sequence[FileSummary], branch: str) -> str:
        """Synthesize the branch narrative. Never raises: failures yield a static text."""
        if not file_summaries:
            return NO_FILE_SUMMARIES

        prompt = build_final_prompt(file_summaries, branch)
        try:
            narrative = self.policy.execute(self.provider.generate, prompt, require_text)
        except ProviderError as e:
            logger.error("Error creating final summary for %s: %s", branch, e)
            return FINAL_SUMMARY_FAILED
        return narrative or FINAL_SUMMARY_FAILED


# ---------------------------------------------------------------------- #
# Prompts                                                                 #
# ---------------------------------------------------------------------- #


def _file_list(files: Sequence[str]) -> str:
    return "\n".join(f"- {f}" for f in files)


def build_batch_prompt(diff: str, branch: str, files: Sequence[str]) -> str:
    return f"""Analyze the following git diff from the "{branch}" branch.

## Files
{_file_list(files)}

## Task
1. Write a concise, high-level summary of the changes across these files.
2. Write a summary for each file, focusing on why it changed, not only what changed.

{_OUTPUT_FORMAT}

## Diff
{diff}"""


def build_chunk_prompt(
    chunk: str,
    branch: str,
    files: Sequence[str],
    index: int,
    total: int,
    chunk_paths: Sequence[str] = (),
) -> str:
    in_chunk = f"\n\nThis chunk contains changes to:\n{_file_list(chunk_paths)}" if chunk_paths else ""
    return f"""This is chunk {index} of {total} of a larger diff from the "{branch}" branch
touching these files:
{_file_list(files)}{in_chunk}

Summarize this chunk only, in plain prose. Focus on the purpose and impact of
the changes and mention which files they belong to.

## Diff chunk
{chunk}"""


def build_reduce_prompt(chunk_summaries: str, branch: str, files: Sequence[str]) -> str:
    return f"""The following are summaries of consecutive chunks of one diff from the
"{branch}" branch. Synthesize them into a single coherent account of the change.

## Files
{_file_list(files)}

{_OUTPUT_FORMAT}

## Chunk summaries
{chunk_summaries}"""


def build_final_prompt(file_summaries: Sequence[FileSummary], branch: str) -> str:
    combined = "\n\n".join(f"File: {s.file}\nSummary: {s.summary}" for s in file_summaries)
    return f"""The following are per-file summaries of the recent changes on the "{branch}" branch.
Synthesize them into a single, coherent, high-level summary of the overall changes.
Focus on the main themes and the overall story. Respond in plain prose.

## File summaries
{combined}"""
