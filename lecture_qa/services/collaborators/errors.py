class ExtractionError(RuntimeError):
    """Raised when slide text, OCR text or a screenshot cannot be produced."""
