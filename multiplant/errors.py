"""
Error taxonomy for the multi-plant optimizer.

Infeasible and unbounded programs are legitimate answers and are reported as a
SolutionStatus, not raised. The exceptions below cover malformed input and
solver failures only.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCodes(str, Enum):
    INVALID_PROBLEM = "INVALID_PROBLEM"
    ITERATION_LIMIT = "ITERATION_LIMIT"
    INTERNAL_INCONSISTENCY = "INTERNAL_INCONSISTENCY"
    CONFIG_ERROR = "CONFIG_ERROR"


class OptimizerError(Exception):
    """
    Base class for all optimizer failures.

    Attributes:
        code: Machine-readable error code
        message: Human-readable description
        details: Extra structured context (offending names, limits, ...)
    """
    code = ErrorCodes.INTERNAL_INCONSISTENCY

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload = {"status": "error", "code": self.code.value, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class InvalidProblem(OptimizerError):
    """Malformed input detected before any solver work starts."""
    code = ErrorCodes.INVALID_PROBLEM


class SolverLimitExceeded(OptimizerError):
    """The pivot count passed the configured iteration cap."""
    code = ErrorCodes.ITERATION_LIMIT

    def __init__(self, iterations: int, limit: int):
        super().__init__(
            f"simplex stopped after {iterations} pivots (limit {limit})",
            {"iterations": iterations, "limit": limit},
        )
        self.iterations = iterations
        self.limit = limit


class InternalInconsistency(OptimizerError):
    """A post-solve cross-check failed; the result cannot be trusted."""
    code = ErrorCodes.INTERNAL_INCONSISTENCY


class ConfigError(OptimizerError):
    """Solver options that cannot be honoured."""
    code = ErrorCodes.CONFIG_ERROR
