"""Command-line interface for ingesting and searching studyrag workspaces."""
