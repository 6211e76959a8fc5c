"""
Data model shared by every stage of the extraction cascade.
"""
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Strategy(str, Enum):
    """Extraction strategies, declared in cascade (cost) order."""
    SITE_PROFILE = "site_profile"
    EMBEDDED_DATA = "embedded_data"
    HEURISTIC = "heuristic"
    AI_ASSISTED = "ai_assisted"
    HEADLESS_RENDER = "headless_render"


CASCADE_ORDER: Tuple[Strategy, ...] = (
    Strategy.SITE_PROFILE,
    Strategy.EMBEDDED_DATA,
    Strategy.HEURISTIC,
    Strategy.AI_ASSISTED,
    Strategy.HEADLESS_RENDER,
)


class ReasonCode(str, Enum):
    """Classified cause of a total extraction failure."""
    BOT_BLOCKED = "BotBlocked"
    REQUIRES_AUTH = "RequiresAuth"
    DYNAMIC_CONTENT_ONLY = "DynamicContentOnly"
    UNREACHABLE = "Unreachable"
    UNKNOWN = "Unknown"


# Fixed per-method priorities. These rank results, they are not calibrated
# probabilities.
CONFIDENCE_SCORES = {
    'json_ld': 0.95,
    'microdata': 0.90,
    'site_profile': 0.85,
    'hydration': 0.85,
    'script_assignment': 0.80,
    'headless_render': 0.70,
    'base64': 0.70,
    'comment': 0.60,
    'api_endpoint': 0.50,
    'heuristic': 0.50,
    'meta': 0.40,
    'ai': 0.40,
}


# Attempt outcomes recorded on the trail
OUTCOME_ACCEPTED = "accepted"
OUTCOME_INSUFFICIENT = "insufficient"
OUTCOME_MINIMAL_SUMMARY = "minimal_summary"
OUTCOME_FAILED = "failed"
OUTCOME_SKIPPED = "skipped"


@dataclass(frozen=True)
class ExtractionRequest:
    """Immutable input to one extraction run."""
    url: str
    raw_html: Optional[str] = None
    site_hint: Optional[str] = None
    context_user_id: Optional[str] = None


@dataclass(frozen=True)
class SiteProfile:
    """Selector table for one job board or ATS platform."""
    id: str
    domain_matchers: Tuple[str, ...]
    selectors: Dict[str, Tuple[str, ...]]
    url_patterns: Tuple[str, ...] = ()
    name: Optional[str] = None

    def selectors_for(self, field_name: str) -> Tuple[str, ...]:
        return self.selectors.get(field_name, ())


@dataclass(frozen=True)
class StrategyAttempt:
    """One entry on the attempt trail."""
    strategy: str
    outcome: str
    reason: str = ""
    error_type: Optional[str] = None
    method: Optional[str] = None
    text_length: int = 0
    elapsed_ms: int = 0
    status_code: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy,
            "outcome": self.outcome,
            "reason": self.reason,
            "error_type": self.error_type,
            "method": self.method,
            "text_length": self.text_length,
            "elapsed_ms": self.elapsed_ms,
            "status_code": self.status_code,
        }


@dataclass(frozen=True)
class ExtractionResult:
    """
    Accepted output of a strategy.

    ``method`` names the sub-technique (e.g. ``json_ld`` inside embedded-data
    mining); ``confidence`` is fixed per method.
    """
    text: str
    strategy: Strategy
    confidence: float
    structured_fields: Optional[Dict[str, Any]] = None
    method: Optional[str] = None
    url: Optional[str] = None
    attempts: Tuple[StrategyAttempt, ...] = ()

    @property
    def text_length(self) -> int:
        return len(self.text.strip())

    def with_attempts(self, attempts: List[StrategyAttempt]) -> "ExtractionResult":
        return replace(self, attempts=tuple(attempts))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "structured_fields": self.structured_fields,
            "strategy": self.strategy.value,
            "method": self.method,
            "confidence": round(self.confidence, 2),
            "url": self.url,
            "attempts": [a.to_dict() for a in self.attempts],
        }


@dataclass(frozen=True)
class FailureAnalysis:
    """Classified failure with user-facing remediation text."""
    reason_code: ReasonCode
    guidance: str
    suggestions: Tuple[str, ...] = ()
    technical_details: Tuple[str, ...] = ()


class ExtractionError(Exception):
    """
    Terminal failure of a pipeline run.

    Raised only after every strategy was tried (or skipped by the deadline).
    Carries everything needed for direct display to an end user.
    """

    def __init__(
        self,
        reason_code: ReasonCode,
        message: str,
        suggestions: Optional[List[str]] = None,
        attempts: Optional[List[StrategyAttempt]] = None,
        technical_details: Optional[List[str]] = None,
    ):
        super().__init__(message)
        self.reason_code = reason_code
        self.message = message
        self.suggestions = list(suggestions or [])
        self.attempts = list(attempts or [])
        self.technical_details = list(technical_details or [])

    @classmethod
    def from_analysis(
        cls, analysis: FailureAnalysis, attempts: List[StrategyAttempt]
    ) -> "ExtractionError":
        return cls(
            reason_code=analysis.reason_code,
            message=analysis.guidance,
            suggestions=list(analysis.suggestions),
            attempts=attempts,
            technical_details=list(analysis.technical_details),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": "Failed to extract job description from URL",
            "reason_code": self.reason_code.value,
            "details": self.message,
            "suggestions": self.suggestions,
            "technical_details": self.technical_details,
            "attempts": [a.to_dict() for a in self.attempts],
        }
