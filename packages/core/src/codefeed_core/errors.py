"""Exception hierarchy for the analysis pipeline.

The pipeline decides what to do with a failure by its class alone:

    ConfigurationError       → fatal, the whole run stops before any work
    ProviderFormatError      → bounded retry, then the batch/heuristics step degrades
    ContextLengthError       → provider fallback or chunking, never surfaced
    ProviderTransportError   → aborts the current branch, other branches continue
    VersionControlReadError  → the affected diff/file is skipped with a warning
"""

from __future__ import annotations


class CodefeedError(Exception):
    """Base class for every error raised by codefeed."""


class ConfigurationError(CodefeedError):
    """The run cannot start: no remote, bad config value, missing credential."""


class MissingCredentialError(ConfigurationError):
    """A provider family was selected but its API key is not in the environment."""

    def __init__(self, env_var: str):
        super().__init__(f"{env_var} environment variable is not set.")
        self.env_var = env_var


class ProviderError(CodefeedError):
    """Base class for failures reported by a text-generation provider."""


class ProviderFormatError(ProviderError):
    """The provider answered, but not with the structure we asked for."""


# The structured response parser raises this name; it is the same condition.
StructuredResponseError = ProviderFormatError


class ProviderTransportError(ProviderError):
    """Network, auth or server failure other than an oversized prompt."""


class ContextLengthError(ProviderError):
    """The provider rejected the prompt because it exceeds its context window."""


class VersionControlReadError(CodefeedError):
    """A git read failed (unknown ref, pruned history, not a repository)."""


class AnalysisInProgressError(CodefeedError):
    """An analysis was requested while another one is still running."""
