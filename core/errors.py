"""
Errors raised by the LearnGraph core.

Every error is scoped to a single request/computation; none of them is
fatal to the process.
"""


class LearnGraphError(Exception):
    """Base class for all core errors."""


class NotFound(LearnGraphError):
    """A learner, concept or edge that was referenced does not exist."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class InvalidInput(LearnGraphError):
    """Out-of-range score, malformed difficulty, missing required field."""


class GraphInconsistency(LearnGraphError):
    """Cycle, dangling edge, or a state pointing at a deleted concept."""


class ComputationLimitExceeded(LearnGraphError):
    """Traversal depth or graph size went past a safety bound."""
