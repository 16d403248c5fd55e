"""Free-text search backend over stored signatures."""

from reeves.text.lexical import TextDocument, TextIndex, build_text_query
from reeves.text.loader import TextIndexLoader

__all__ = ["TextDocument", "TextIndex", "TextIndexLoader", "build_text_query"]
