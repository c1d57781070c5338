"""Validation result models shared by descriptor validation and the CLI."""

from enum import Enum

from pydantic import BaseModel, Field


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class ValidationIssue(BaseModel):
    """A single problem found while validating a descriptor."""

    severity: Severity
    category: str = Field(description="Issue family, e.g. 'path', 'expression'")
    location: str = Field(description="Descriptor file and node where it was found")
    message: str
    suggestion: str | None = None


class ValidationResult(BaseModel):
    """Collected validation issues."""

    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == Severity.ERROR]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == Severity.WARNING]

    @property
    def valid(self) -> bool:
        return not self.errors

    def add(self, issue: ValidationIssue) -> None:
        self.issues.append(issue)

    def extend(self, issues: list[ValidationIssue]) -> None:
        self.issues.extend(issues)
