"""Allow ``python -m studyrag.cli`` execution."""

from studyrag.cli.ingest import main

main()
