"""
Error taxonomy for the analysis pipeline.

Only NoApplicationsFound and NoEmbeddingsAvailable abort a run.
Everything else is caught at the component that owns it and degrades
to partial output.
"""


class NicheFinderError(Exception):
    """Base class for every error raised by this package."""


class NoApplicationsFound(NicheFinderError):
    """No apps are stored for the keyword. Ingestion has to run first."""

    def __init__(self, keyword: str):
        self.keyword = keyword
        super().__init__(f'No apps found for "{keyword}". Run the scraper first!')


class NoEmbeddingsAvailable(NicheFinderError):
    """Apps exist but none carries a usable embedding."""

    def __init__(self, keyword: str, dropped: int = 0):
        self.keyword = keyword
        self.dropped = dropped
        super().__init__(
            f'No apps with embeddings for "{keyword}" ({dropped} dropped). Check the scraper!'
        )


class DimensionMismatch(NicheFinderError, ValueError):
    """Two vectors of different length were compared."""

    def __init__(self, len_a: int, len_b: int):
        self.len_a = len_a
        self.len_b = len_b
        super().__init__(f"Vector dimensions differ: {len_a} vs {len_b}")


class MalformedAnalysis(NicheFinderError):
    """The model's response could not be turned into an analysis."""


class LLMError(NicheFinderError):
    """The language model call failed or returned nothing."""


class StorageError(NicheFinderError):
    """A database operation failed."""
