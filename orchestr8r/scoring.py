"""FRVPOV confidence scoring.

Feasibility, Risk, Value, Predictability and Overall Viability of a task,
plus a confidence score reflecting how much is known about it. Used to
decide whether a project item is ready to hand to automation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

PRIORITIES = ("P0", "P1", "P2")
SIZES = ("XS", "S", "M", "L", "XL")

_SIZE_FEASIBILITY = {"XS": 20, "S": 15, "M": 0, "L": -15, "XL": -30}
_SIZE_RISK = {"XS": -10, "S": -5, "M": 0, "L": 15, "XL": 30}
_PRIORITY_RISK = {"P0": 20, "P1": 10, "P2": 0}
_PRIORITY_VALUE = {"P0": 40, "P1": 20, "P2": 0}

RISKY_LABELS = ("tech-debt", "breaking-change", "security", "performance")
VALUE_LABELS = ("feature", "customer-request", "revenue", "ux")
PREDICTABLE_LABELS = ("bug", "refactor", "documentation", "test")
UNPREDICTABLE_LABELS = ("research", "exploration", "poc", "experiment")


@dataclass(slots=True)
class TaskAttributes:
    """Attributes of a project item that affect its score."""

    title: str
    description: Optional[str] = None
    priority: Optional[str] = None
    size: Optional[str] = None
    labels: List[str] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)
    assignee: Optional[str] = None
    due_date: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskAttributes":
        """Create from dictionary representation."""
        return cls(
            title=data["title"],
            description=data.get("description"),
            priority=data.get("priority"),
            size=data.get("size"),
            labels=list(data.get("labels") or []),
            dependencies=list(data.get("dependencies") or []),
            assignee=data.get("assignee"),
            due_date=data.get("due_date", data.get("dueDate")),
        )

    def validate(self) -> List[str]:
        """Validate the attributes and return any issues."""
        issues = []
        if not self.title or not self.title.strip():
            issues.append("Title is required")
        if self.priority is not None and self.priority not in PRIORITIES:
            issues.append(f"Invalid priority: {self.priority}")
        if self.size is not None and self.size not in SIZES:
            issues.append(f"Invalid size: {self.size}")
        return issues


@dataclass(slots=True)
class FRVPOVScore:
    feasibility: int
    risk: int
    value: int
    predictability: int
    overall_viability: int
    confidence: int
    recommendation: str  # 'ready', 'needs-review', 'not-ready'
    reasoning: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "feasibility": self.feasibility,
            "risk": self.risk,
            "value": self.value,
            "predictability": self.predictability,
            "overall_viability": self.overall_viability,
            "confidence": self.confidence,
            "recommendation": self.recommendation,
            "reasoning": self.reasoning,
        }


def _clamp(score: float) -> int:
    return int(max(0, min(100, score)))


def _has_label(task: TaskAttributes, candidates: Iterable[str]) -> bool:
    return any(candidate in label.lower() for label in task.labels for candidate in candidates)


def _description_length(task: TaskAttributes) -> int:
    return len(task.description) if task.description else 0


def calculate_feasibility(task: TaskAttributes) -> int:
    """How achievable is this task given current resources?"""
    score = 70
    score += _SIZE_FEASIBILITY.get(task.size or "M", 0)
    if _description_length(task) > 100:
        score += 10
    score -= len(task.dependencies) * 5
    if task.assignee:
        score += 5
    return _clamp(score)


def calculate_risk(task: TaskAttributes) -> int:
    """What's the risk of failure or complications?"""
    risk = 30
    risk += _PRIORITY_RISK.get(task.priority or "P2", 0)
    risk += _SIZE_RISK.get(task.size or "M", 0)
    if _has_label(task, RISKY_LABELS):
        risk += 20
    if _description_length(task) < 50:
        risk += 15
    return _clamp(risk)


def calculate_value(task: TaskAttributes) -> int:
    """How valuable is completing this task?"""
    value = 50
    value += _PRIORITY_VALUE.get(task.priority or "P2", 0)
    if _has_label(task, VALUE_LABELS):
        value += 15
    # Small P0 work has the best value/effort ratio
    if task.priority == "P0" and task.size in ("XS", "S"):
        value += 15
    return _clamp(value)


def calculate_predictability(task: TaskAttributes) -> int:
    """How well can we estimate the effort and outcome?"""
    predictability = 60
    if _description_length(task) > 200:
        predictability += 20
    if task.size:
        predictability += 10
    if _has_label(task, PREDICTABLE_LABELS):
        predictability += 15
    if _has_label(task, UNPREDICTABLE_LABELS):
        predictability -= 25
    return _clamp(predictability)


def calculate_frvpov(task: TaskAttributes) -> FRVPOVScore:
    """Score a task on every FRVPOV dimension and recommend an action."""
    issues = task.validate()
    if issues:
        raise ValueError("; ".join(issues))

    feasibility = calculate_feasibility(task)
    risk = calculate_risk(task)
    value = calculate_value(task)
    predictability = calculate_predictability(task)

    overall_viability = int(
        feasibility * 0.3
        + (100 - risk) * 0.2
        + value * 0.35
        + predictability * 0.15
        + 0.5
    )

    confidence = 50
    if _description_length(task) > 100:
        confidence += 20
    if task.size:
        confidence += 15
    if task.priority:
        confidence += 15

    if overall_viability >= 70 and confidence >= 70:
        recommendation = "ready"
        reasoning = "High viability and confidence - ready for AI automation"
    elif overall_viability >= 50 or confidence >= 60:
        recommendation = "needs-review"
        reasoning = "Moderate scores - human review recommended before automation"
    else:
        recommendation = "not-ready"
        reasoning = "Low viability or confidence - needs more definition"

    if risk > 70:
        reasoning += ". High risk detected - careful review needed"
    if feasibility < 40:
        reasoning += ". Low feasibility - may be blocked or too complex"
    if value < 40:
        reasoning += ". Low value - consider priority"

    return FRVPOVScore(
        feasibility=feasibility,
        risk=risk,
        value=value,
        predictability=predictability,
        overall_viability=overall_viability,
        confidence=confidence,
        recommendation=recommendation,
        reasoning=reasoning,
    )


def batch_calculate_frvpov(tasks: Iterable[TaskAttributes]) -> List[FRVPOVScore]:
    return [calculate_frvpov(task) for task in tasks]


def filter_ready_tasks(
    tasks: Iterable[TaskAttributes],
    min_viability: int = 70,
    min_confidence: int = 70,
) -> List[Tuple[TaskAttributes, FRVPOVScore]]:
    """Tasks meeting both thresholds, best viability first."""
    scored = [(task, calculate_frvpov(task)) for task in tasks]
    ready = [
        (task, score) for task, score in scored
        if score.overall_viability >= min_viability and score.confidence >= min_confidence
    ]
    return sorted(ready, key=lambda pair: pair[1].overall_viability, reverse=True)


def format_frvpov_score(score: FRVPOVScore) -> str:
    def bar(value: int) -> str:
        filled = int(value / 10 + 0.5)
        return "█" * filled + "░" * (10 - filled)

    rule = "━" * 39
    return "\n".join([
        "FRVPOV Analysis:",
        rule,
        f"Feasibility:    {bar(score.feasibility)} {score.feasibility}%",
        f"Risk:           {bar(score.risk)} {score.risk}%",
        f"Value:          {bar(score.value)} {score.value}%",
        f"Predictability: {bar(score.predictability)} {score.predictability}%",
        rule,
        f"Overall:        {bar(score.overall_viability)} {score.overall_viability}%",
        f"Confidence:     {bar(score.confidence)} {score.confidence}%",
        "",
        f"Recommendation: {score.recommendation.upper()}",
        score.reasoning,
    ])
