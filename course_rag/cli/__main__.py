"""Allow ``python -m course_rag.cli`` execution."""

from course_rag.cli.ingest import main

main()
