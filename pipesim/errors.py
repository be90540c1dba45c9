"""Error types for the pipeline simulator."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ParseError:
    """A single assembly diagnostic. Collected by the parser, never raised."""
    line: int
    message: str

    def to_dict(self) -> dict:
        return {"line": self.line, "message": self.message}

    def __str__(self) -> str:
        return f"Line {self.line}: {self.message}"


@dataclass
class ErrorInfo:
    """Structured error information for API responses."""
    type: str
    message: str
    cycle: int
    line: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "message": self.message,
            "cycle": self.cycle,
            "line": self.line,
        }


class PipesimError(Exception):
    """Base exception for all simulator errors."""

    def __init__(
        self,
        message: str,
        cycle: int = 0,
        line: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.cycle = cycle
        self.line = line

    def to_error_info(self) -> ErrorInfo:
        return ErrorInfo(
            type=self.__class__.__name__,
            message=self.message,
            cycle=self.cycle,
            line=self.line,
        )


class AssemblyError(PipesimError):
    """Program text failed to assemble."""

    def __init__(self, message: str, errors: Optional[list[ParseError]] = None):
        errors = list(errors or [])
        super().__init__(message, line=errors[0].line if errors else None)
        self.errors = errors

    @classmethod
    def from_errors(cls, errors: list[ParseError], prefix: str = "") -> "AssemblyError":
        details = "\n".join(str(error) for error in errors)
        message = f"{prefix}\n{details}" if prefix else details
        return cls(message, errors)


class CycleLimitExceeded(PipesimError):
    """Maximum cycle count exceeded before the pipeline drained."""
    pass
