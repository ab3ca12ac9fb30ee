"""Exceptions raised by the rule engine."""


class RuleParseError(ValueError):
    """A condition or action document could not be parsed."""

    def __init__(self, document: str, reason: str):
        super().__init__(f"{document}: {reason}")
        self.document = document
        self.reason = reason
