"""
TrustWrapper Input Models

Decision and VerificationContext arrive as JSON-shaped data from a host
agent runtime. They are parsed into frozen pydantic models; parse failures
surface as trustwrapper ValidationError with the offending field path.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from .errors import ValidationError


class RiskLevel(str, Enum):
    """Four-tier severity scale shared by every assessment."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RISK_ORDER.index(self)

    @classmethod
    def highest(cls, *levels: "RiskLevel") -> "RiskLevel":
        return max(levels, key=lambda level: level.rank, default=cls.LOW)


_RISK_ORDER = [RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH, RiskLevel.CRITICAL]


class Recommendation(str, Enum):
    """Final disposition of a verified decision."""
    APPROVED = "approved"
    WARNING = "warning"
    REJECTED = "rejected"


class PatternCategory(str, Enum):
    SCAM = "scam"
    MANIPULATION = "manipulation"
    EMOTION = "emotion"
    HYPE = "hype"
    TECHNICAL = "technical"
    BEHAVIORAL = "behavioral"


class Enforcement(str, Enum):
    """Whether a breached limit is a hard violation or a warning."""
    MANDATORY = "mandatory"
    ADVISORY = "advisory"


class Decision(BaseModel):
    """
    A proposed trading action submitted for verification.

    Everything except action and asset is optional. Presence of action and
    asset is enforced by the engine's validation step so that the caller
    receives a field-level ValidationError rather than a parse error.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    action: Optional[str] = None
    asset: Optional[str] = None
    amount: Optional[float] = None
    price: Optional[float] = None
    leverage: Optional[float] = None
    reasoning: Optional[str] = None
    strategy: Optional[str] = None
    timeframe: Optional[float] = None
    confidence: Optional[float] = None
    stop_loss: Optional[float] = Field(None, alias="stopLoss")
    take_profit: Optional[float] = Field(None, alias="takeProfit")
    portfolio_size: Optional[float] = Field(None, alias="portfolioSize")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def text(self) -> str:
        """Reasoning and strategy joined, the input for language checks."""
        return " ".join(part for part in (self.reasoning, self.strategy) if part)


class VerificationContext(BaseModel):
    """Optional market and account context for a verification."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    jurisdiction: Optional[Union[str, List[str]]] = None
    # Left untyped: a malformed snapshot degrades the volatility check
    # instead of failing the whole call.
    market_data: Optional[Dict[str, Any]] = Field(None, alias="marketData")
    historical_performance: Optional[float] = Field(None, alias="historicalPerformance")
    market_conditions: Optional[str] = Field(None, alias="marketConditions")
    insider_information: bool = Field(False, alias="insiderInformation")
    conflict_of_interest: bool = Field(False, alias="conflictOfInterest")
    recent_trade_count: Optional[int] = Field(None, alias="recentTradeCount")
    timestamp: Optional[datetime] = None
    agent_id: Optional[str] = Field(None, alias="agentId")
    portfolio_value: Optional[float] = Field(None, alias="portfolioValue")

    def jurisdictions(self) -> List[str]:
        if not self.jurisdiction:
            return []
        if isinstance(self.jurisdiction, str):
            return [self.jurisdiction.upper()]
        return [j.upper() for j in self.jurisdiction]


def _convert_error(prefix: str, exc: pydantic.ValidationError) -> ValidationError:
    first = exc.errors()[0]
    loc = ".".join(str(part) for part in first.get("loc", ()))
    field = f"{prefix}.{loc}" if loc else prefix
    return ValidationError(field, first.get("msg", "invalid value"))


def parse_decision(value: Union[Decision, Dict[str, Any]]) -> Decision:
    """Accept a Decision or a plain mapping."""
    if isinstance(value, Decision):
        return value
    if not isinstance(value, dict):
        raise ValidationError("decision", "must be an object")
    try:
        return Decision.model_validate(value)
    except pydantic.ValidationError as e:
        raise _convert_error("decision", e) from None


def parse_context(
    value: Union[VerificationContext, Dict[str, Any], None]
) -> Optional[VerificationContext]:
    """Accept a VerificationContext, a plain mapping, or None."""
    if value is None or isinstance(value, VerificationContext):
        return value
    if not isinstance(value, dict):
        raise ValidationError("context", "must be an object")
    try:
        return VerificationContext.model_validate(value)
    except pydantic.ValidationError as e:
        raise _convert_error("context", e) from None
