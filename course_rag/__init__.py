"""course-rag: chunking and vector retrieval for course documents."""

__version__ = "0.1.0"
