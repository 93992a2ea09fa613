"""Hunk-aligned splitting of unified diffs into provider-sized chunks.

Token counts here are estimates, not tokenizer output. ``estimate_tokens``
assumes roughly four characters per token, which is close for English prose
and source code but can be off by a wide margin for minified files, non-Latin
text or long runs of whitespace. Budgets passed to ``split_diff_into_chunks``
should therefore leave headroom, and tests should assert against the estimate
rather than against any real provider limit.
"""

from __future__ import annotations

import math
import re

_CHARS_PER_TOKEN = 4

# Zero-width split point before every hunk header line ("@@ -a,b +c,d @@ ...").
# Splitting on a lookahead keeps the header with the hunk it introduces and
# means the pieces concatenate back to the original text.
_HUNK_BOUNDARY_RE = re.compile(r"(?=^@@)", re.MULTILINE)


def estimate_tokens(text: str) -> int:
    """Approximate the token count of ``text`` (ceil of characters / 4)."""
    return math.ceil(len(text) / _CHARS_PER_TOKEN)


def split_into_hunks(diff: str) -> list[str]:
    """Split a diff immediately before each hunk header.

    The first piece holds whatever precedes the first hunk (the ``diff --git``
    and ``---``/``+++`` file headers). Headers of later files stay attached to
    the end of the previous hunk, so a file header never starts a piece on its
    own and no hunk body is ever cut.
    """
    return [piece for piece in _HUNK_BOUNDARY_RE.split(diff) if piece]


def split_diff_into_chunks(diff: str, max_tokens: int) -> list[str]:
    """Group whole hunks into chunks whose estimated size stays within ``max_tokens``.

    A new chunk is started before a hunk that would push the running chunk over
    budget. A hunk that is over budget by itself becomes its own chunk and is
    allowed to exceed the budget; hunks are never split internally.
    """
    chunks: list[str] = []
    current = ""

    for hunk in split_into_hunks(diff):
        if current and estimate_tokens(current + hunk) > max_tokens:
            chunks.append(current)
            current = ""
        current += hunk

    if current:
        chunks.append(current)
    return chunks


# "diff --git a/<old> b/<new>"; the new path names the file in the work tree.
_FILE_HEADER_RE = re.compile(r"^diff --git a/\S+ b/(\S+)$", re.MULTILINE)


def chunk_files(chunks: list[str]) -> list[list[str]]:
    """Name the files each chunk's hunks belong to.

    ``split_into_hunks`` leaves a file header at the end of the previous
    piece, so a chunk can start in the middle of a file with no header of its
    own, and can end with the header of a file whose hunks are all in the next
    chunk. The file in effect at the end of one chunk is carried into the next.
    """
    result: list[list[str]] = []
    current: str | None = None
    for n, chunk in enumerate(chunks):
        files: list[str] = []
        if current is not None and chunk.startswith("@@"):
            files.append(current)

        headers = list(_FILE_HEADER_RE.finditer(chunk))
        for i, match in enumerate(headers):
            end = headers[i + 1].start() if i + 1 < len(headers) else len(chunk)
            has_hunk = re.search(r"^@@", chunk[match.end() : end], re.MULTILINE) is not None
            trailing = i == len(headers) - 1 and not has_hunk and n < len(chunks) - 1
            if not trailing and match.group(1) not in files:
                files.append(match.group(1))
            current = match.group(1)
        result.append(files)
    return result
