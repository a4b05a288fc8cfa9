"""Document ingestion: sentence segmentation, chunking and orchestration."""

from course_rag.services.ingestion.chunker import TextChunker
from course_rag.services.ingestion.ingestion_service import IngestionService
from course_rag.services.ingestion.segmenter import Sentence, segment, segment_spans

__all__ = ["IngestionService", "Sentence", "TextChunker", "segment", "segment_spans"]
