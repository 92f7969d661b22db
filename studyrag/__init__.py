"""studyrag: document ingestion and semantic retrieval for study workspaces.

Turns uploaded PDF/DOCX/TXT files into embedded passages stored in a
per-workspace vector index, and turns natural-language questions into a
ranked, deduplicated context window for downstream generation.
"""

__version__ = "0.1.0"
