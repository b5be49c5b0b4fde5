"""PDF OCR search service.

Uploaded PDFs are rasterized page by page, run through Tesseract, and
reassembled into paragraphs. Questions against those paragraphs are
answered by an OpenAI-compatible chat-completion endpoint.
"""

__version__ = "0.1.0"
