from textbook_indents.core.documents.models import DocumentSequence
from textbook_indents.core.documents.number_generator import (
    DocumentNumberGenerator,
    format_document_number,
    get_document_number,
)

__all__ = [
    "DocumentSequence",
    "DocumentNumberGenerator",
    "format_document_number",
    "get_document_number",
]
