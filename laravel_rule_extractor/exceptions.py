"""Exception types raised by the rule extractor"""


class RuleExtractionError(Exception):
    """Base class for all extractor errors"""


class SourceParseError(RuleExtractionError):
    """PHP source could not be parsed into a usable tree"""

    def __init__(self, message: str, source_label: str = None):
        super().__init__(message)
        self.source_label = source_label


class AnalysisError(RuleExtractionError):
    """Raised by a collector running in fail-on-error mode"""

    def __init__(self, context: str, message: str, metadata: dict = None):
        super().__init__(f"Error in {context}: {message}")
        self.context = context
        self.metadata = metadata or {}
