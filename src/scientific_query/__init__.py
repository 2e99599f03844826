"""Scientific query pipeline: PubMed retrieval, ranking, and LLM analysis of clinical questions."""

__version__ = "0.1.0"
