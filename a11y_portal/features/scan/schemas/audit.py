from typing import Dict, List, Optional

from pydantic import BaseModel, Field


SEVERITY_LEVELS = ("critical", "serious", "moderate", "minor")


class SeverityBreakdown(BaseModel):
    critical: int = 0
    serious: int = 0
    moderate: int = 0
    minor: int = 0

    def add(self, impact: Optional[str], count: int = 1) -> None:
        level = impact if impact in SEVERITY_LEVELS else "minor"
        setattr(self, level, getattr(self, level) + count)

    def merged(self, other: "SeverityBreakdown") -> "SeverityBreakdown":
        return SeverityBreakdown(
            **{level: getattr(self, level) + getattr(other, level) for level in SEVERITY_LEVELS}
        )


class Violation(BaseModel):
    """One failed rule on one page."""
    id: str
    engine: str
    impact: Optional[str] = None
    message: str = ""
    nodes: int = 1


class PageResult(BaseModel):
    """Outcome of auditing a single URL. Folded into the job checkpoint, never stored whole."""
    url: str
    score: Optional[int] = Field(default=None, ge=0, le=100)
    violation_count: int = 0
    severity: SeverityBreakdown = Field(default_factory=SeverityBreakdown)
    violations: List[Violation] = Field(default_factory=list)
    engine_scores: Dict[str, int] = Field(default_factory=dict)
    # Lighthouse category scores (accessibility, performance, best-practices, seo)
    category_scores: Dict[str, int] = Field(default_factory=dict)
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.score is not None

    @classmethod
    def failed(cls, url: str, error: str) -> "PageResult":
        return cls(url=url, error=error)
