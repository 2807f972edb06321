"""
Semantic contracts for the assessment engine.

This module defines the data structures that pass between the engine's
components and the caller that owns storage. Questions, conditions,
responses and comparisons are immutable; runs and module progress are
plain mutable records owned by the Run Manager.

Design principles:
- Frozen dataclasses for everything that is authored or derived
- String-valued enums for clean JSON serialization
- Every record round-trips through plain dicts (to_dict / from_dict)
- No dependencies on engine modules (definition layer only)

Contents:
- Enums: QuestionType, RunStatus, ContextType, Trend, ConfidenceSnapshot,
  ImpactLevel, MeasurementConfidence
- VisibilityCondition, QuestionOption, Question, Module
- Response payloads (tagged union) and Response
- RunContext, ModuleOwnership, ModuleSummary, Run, ModuleProgress
- RunComparison, ProgressSummary

Usage:
    from assessment.contracts import Question, Response, Run, RunContext
"""

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, FrozenSet, Iterable, List, Optional, Tuple, Union

from assessment.utils.answer_options import AnswerValue, parse_answer
from assessment.utils.helpers import utc_now_iso
from assessment.utils.review_modes import ReviewDepth


# =============================================================================
# Enumerations
# =============================================================================

class QuestionType(str, Enum):
    """Kinds of question a questionnaire can contain."""
    YES_NO_UNSURE = "yes-no-unsure"
    MEASUREMENT = "measurement"
    MULTI_SELECT = "multi-select"
    SINGLE_SELECT = "single-select"
    LINK = "link"
    TEXT = "text"
    URL_ANALYSIS = "url-analysis"


QUESTION_TYPE_ALIASES = {
    "link-input": QuestionType.LINK,
}


class RunStatus(str, Enum):
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class ContextType(str, Enum):
    """What a run was for. Labelling only - no effect on engine logic."""
    GENERAL = "general"
    TEAM = "team"
    DEPARTMENT = "department"
    EVENT = "event"
    LOCATION = "location"
    EXPERIENCE = "experience"
    OTHER = "other"


class Trend(str, Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"
    MIXED = "mixed"


class ConfidenceSnapshot(str, Enum):
    """Coarse rollup of how positively a completed run's answers skew."""
    STRONG = "strong"
    MIXED = "mixed"
    NEEDS_WORK = "needs-work"


class ImpactLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class MeasurementConfidence(str, Enum):
    CONFIDENT = "confident"
    SOMEWHAT_CONFIDENT = "somewhat-confident"
    NOT_CONFIDENT = "not-confident"


# =============================================================================
# Questions
# =============================================================================

@dataclass(frozen=True)
class VisibilityCondition:
    """
    Rule making a question's display depend on a prior answer.

    A condition is satisfied iff the referenced question has been answered
    and its answer is one of acceptable_answers. It is also satisfied when
    any of its or_conditions is satisfied.

    Attributes:
        question_id: Question whose answer is inspected.
            May reference a question that no longer exists; such
            conditions are simply never satisfied.
        acceptable_answers: Answers that satisfy the condition.
            Strings, so they can hold canonical answers ('yes', 'no', ...)
            or option ids of single-select questions.
        or_conditions: Alternative conditions, any of which also satisfies
            this one. Empty for plain conditions.

    Examples:
        >>> cond = VisibilityCondition('1.1-1', frozenset({'no', 'partially'}))
        >>> cond.to_dict()
        {'question_id': '1.1-1', 'acceptable_answers': ['no', 'partially']}
    """
    question_id: str
    acceptable_answers: FrozenSet[str]
    or_conditions: Tuple["VisibilityCondition", ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "question_id": self.question_id,
            "acceptable_answers": sorted(self.acceptable_answers),
        }
        if self.or_conditions:
            data["or_conditions"] = [c.to_dict() for c in self.or_conditions]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VisibilityCondition":
        """
        Build a condition from configuration or stored JSON.

        Accepts both the current keys (question_id, acceptable_answers,
        or_conditions) and the authoring keys (questionId, answers,
        orConditions). Legacy canonical answers are normalised.

        Raises:
            ValueError: If no question id is present
        """
        question_id = data.get("question_id", data.get("questionId"))
        if not question_id:
            raise ValueError(f"Condition missing question id: {data}")

        raw_answers = data.get("acceptable_answers", data.get("answers", []))
        answers = set()
        for raw in raw_answers:
            canonical = parse_answer(raw)
            answers.add(canonical.value if canonical is not None else str(raw))

        raw_or = data.get("or_conditions", data.get("orConditions", []))
        return cls(
            question_id=question_id,
            acceptable_answers=frozenset(answers),
            or_conditions=tuple(cls.from_dict(sub) for sub in raw_or),
        )


@dataclass(frozen=True)
class QuestionOption:
    """Option of a single-select or multi-select question."""
    id: str
    label: str
    sentiment: Optional[str] = None


@dataclass(frozen=True)
class Question:
    """
    Immutable, externally authored question.

    Attributes:
        id: Unique within a questionnaire (e.g. '1.1-3')
        text: Question text shown to the user
        type: QuestionType
        review_depth: foundation, detailed or both
        category: Free-form grouping (e.g. 'operational', 'policy')
        impact_level: high / medium / low, optional
        safety_related: 'no' answers need professional review
        is_entry_point: Starts a branch even when it has a condition
        visibility_condition: Show only when satisfied
        hide_condition: Hide when satisfied; evaluated first and wins
        options: Options for select questions (tuple for immutability)
        measurement_unit: Unit for measurement questions (e.g. 'mm')
        help_text: Extra guidance for the user
    """
    id: str
    text: str = ""
    type: QuestionType = QuestionType.YES_NO_UNSURE
    review_depth: ReviewDepth = ReviewDepth.BOTH
    category: Optional[str] = None
    impact_level: Optional[ImpactLevel] = None
    safety_related: bool = False
    is_entry_point: bool = False
    visibility_condition: Optional[VisibilityCondition] = None
    hide_condition: Optional[VisibilityCondition] = None
    options: Tuple[QuestionOption, ...] = ()
    measurement_unit: Optional[str] = None
    help_text: Optional[str] = None


@dataclass(frozen=True)
class Module:
    """A questionnaire module: an ordered, immutable question list."""
    id: str
    code: str
    name: str
    questions: Tuple[Question, ...] = ()


# =============================================================================
# Responses
# =============================================================================
#
# Each payload variant carries only what its question type needs. The 'kind'
# class attribute is the tag written to JSON.

@dataclass(frozen=True)
class CanonicalAnswer:
    value: AnswerValue
    kind: ClassVar[str] = "canonical"

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "value": self.value.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CanonicalAnswer":
        value = parse_answer(data.get("value"))
        if value is None:
            raise ValueError(f"Unknown canonical answer: {data.get('value')!r}")
        return cls(value=value)


@dataclass(frozen=True)
class SingleSelectAnswer:
    option_id: str
    kind: ClassVar[str] = "single-select"

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "option_id": self.option_id}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SingleSelectAnswer":
        return cls(option_id=data["option_id"])


@dataclass(frozen=True)
class MultiSelectAnswer:
    option_ids: Tuple[str, ...]
    kind: ClassVar[str] = "multi-select"

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "option_ids": list(self.option_ids)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MultiSelectAnswer":
        return cls(option_ids=tuple(data.get("option_ids", [])))


@dataclass(frozen=True)
class MeasurementAnswer:
    value: float
    unit: str
    confidence: MeasurementConfidence = MeasurementConfidence.CONFIDENT
    kind: ClassVar[str] = "measurement"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "value": self.value,
            "unit": self.unit,
            "confidence": self.confidence.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MeasurementAnswer":
        return cls(
            value=float(data["value"]),
            unit=data.get("unit", ""),
            confidence=MeasurementConfidence(data.get("confidence", "confident")),
        )


@dataclass(frozen=True)
class LinkAnswer:
    url: str
    kind: ClassVar[str] = "link"

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "url": self.url}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LinkAnswer":
        return cls(url=data["url"])


@dataclass(frozen=True)
class TextAnswer:
    text: str
    kind: ClassVar[str] = "text"

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "text": self.text}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TextAnswer":
        return cls(text=data.get("text", ""))


@dataclass(frozen=True)
class UrlAnalysisAnswer:
    """Result of an automated page review, stored as the answer."""
    url: str
    overall_score: float
    overall_status: str
    summary: str = ""
    analysis_date: Optional[str] = None
    kind: ClassVar[str] = "url-analysis"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "url": self.url,
            "overall_score": self.overall_score,
            "overall_status": self.overall_status,
            "summary": self.summary,
            "analysis_date": self.analysis_date,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UrlAnalysisAnswer":
        return cls(
            url=data["url"],
            overall_score=float(data.get("overall_score", data.get("overallScore", 0))),
            overall_status=data.get("overall_status", data.get("overallStatus", "missing")),
            summary=data.get("summary", ""),
            analysis_date=data.get("analysis_date", data.get("analysisDate")),
        )


Payload = Union[
    CanonicalAnswer,
    SingleSelectAnswer,
    MultiSelectAnswer,
    MeasurementAnswer,
    LinkAnswer,
    TextAnswer,
    UrlAnalysisAnswer,
]

PAYLOAD_TYPES = {
    payload_cls.kind: payload_cls
    for payload_cls in (
        CanonicalAnswer,
        SingleSelectAnswer,
        MultiSelectAnswer,
        MeasurementAnswer,
        LinkAnswer,
        TextAnswer,
        UrlAnalysisAnswer,
    )
}


def payload_from_dict(data: Optional[Dict[str, Any]]) -> Optional[Payload]:
    """
    Rebuild a payload from its tagged dict.

    Raises:
        ValueError: If the tag is unknown
    """
    if data is None:
        return None
    kind = data.get("kind")
    payload_cls = PAYLOAD_TYPES.get(kind)
    if payload_cls is None:
        raise ValueError(f"Unknown response payload kind: {kind!r}")
    return payload_cls.from_dict(data)


def _payload_from_flat(data: Dict[str, Any]) -> Optional[Payload]:
    """
    Build a payload from the flat response shape older releases stored
    (one object with optional answer / measurement / multiSelectValues /
    linkValue / urlAnalysis fields).
    """
    answer = data.get("answer")
    if answer is not None:
        canonical = parse_answer(answer)
        if canonical is not None:
            return CanonicalAnswer(canonical)
        return SingleSelectAnswer(str(answer))

    if data.get("measurement"):
        return MeasurementAnswer.from_dict(data["measurement"])
    if data.get("multiSelectValues") is not None:
        return MultiSelectAnswer(tuple(data["multiSelectValues"]))
    if data.get("urlAnalysis"):
        return UrlAnalysisAnswer.from_dict(data["urlAnalysis"])
    if data.get("linkValue"):
        return LinkAnswer(data["linkValue"])
    return None


@dataclass(frozen=True)
class Response:
    """
    One answered question within a run.

    Responses are keyed by question_id within a run; a later write for the
    same question replaces the earlier one.

    Attributes:
        question_id: Question answered
        payload: Type-specific answer (None for notes-only responses)
        notes: Free-text notes
        timestamp: ISO 8601 time of the answer

    The derived `answer` property is what visibility conditions match
    against: the canonical answer value or a single-select option id.
    """
    question_id: str
    payload: Optional[Payload] = None
    notes: Optional[str] = None
    timestamp: str = field(default_factory=utc_now_iso)

    @property
    def answer(self) -> Optional[str]:
        if isinstance(self.payload, CanonicalAnswer):
            return self.payload.value.value
        if isinstance(self.payload, SingleSelectAnswer):
            return self.payload.option_id
        return None

    @property
    def canonical_answer(self) -> Optional[AnswerValue]:
        if isinstance(self.payload, CanonicalAnswer):
            return self.payload.value
        return None

    @classmethod
    def with_answer(cls, question_id: str, answer: str, notes: Optional[str] = None,
                    timestamp: Optional[str] = None) -> "Response":
        """
        Shortcut for yes/no/unsure and single-select responses.

        Canonical answers (and their legacy aliases) become CanonicalAnswer;
        anything else is treated as a single-select option id.
        """
        canonical = parse_answer(answer)
        payload = CanonicalAnswer(canonical) if canonical is not None else SingleSelectAnswer(answer)
        return cls(
            question_id=question_id,
            payload=payload,
            notes=notes,
            timestamp=timestamp or utc_now_iso(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question_id": self.question_id,
            "payload": self.payload.to_dict() if self.payload is not None else None,
            "notes": self.notes,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Response":
        question_id = data.get("question_id", data.get("questionId"))
        if not question_id:
            raise ValueError(f"Response missing question id: {data}")

        if "payload" in data:
            payload = payload_from_dict(data["payload"])
        else:
            payload = _payload_from_flat(data)

        return cls(
            question_id=question_id,
            payload=payload,
            notes=data.get("notes"),
            timestamp=data.get("timestamp") or utc_now_iso(),
        )


# =============================================================================
# Runs
# =============================================================================

@dataclass(frozen=True)
class RunContext:
    """
    Free-form metadata identifying what a run was for.

    Attributes:
        type: ContextType (team, event, location, ...)
        name: Non-empty label, e.g. 'Front desk team'
        description: Optional longer description

    Raises:
        ValueError: If name is empty or type is unknown
    """
    type: ContextType
    name: str
    description: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.type, ContextType):
            object.__setattr__(self, "type", ContextType(self.type))
        if not self.name or not self.name.strip():
            raise ValueError("Run context name must not be empty")

    def to_dict(self) -> Dict[str, Any]:
        data = {"type": self.type.value, "name": self.name}
        if self.description:
            data["description"] = self.description
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RunContext":
        return cls(
            type=ContextType(data.get("type", "general")),
            name=data.get("name", ""),
            description=data.get("description"),
        )


# Context of the implicit editing run created before any run is named
PROVISIONAL_CONTEXT = RunContext(ContextType.GENERAL, "Current assessment")

# Context given to unnamed work when it is auto-archived
PREVIOUS_ASSESSMENT_CONTEXT = RunContext(ContextType.GENERAL, "Previous assessment")


@dataclass
class ModuleOwnership:
    """Assignment and accountability for a module or run."""
    assigned_to: Optional[str] = None
    assigned_to_email: Optional[str] = None
    target_completion_date: Optional[str] = None
    completed_by: Optional[str] = None
    completed_by_role: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in self.__dict__.items() if v is not None}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ModuleOwnership":
        data = data or {}
        return cls(**{k: data.get(k) for k in cls.__dataclass_fields__})


@dataclass
class ModuleSummary:
    """
    Caller-supplied summary stored with a completed run.

    The engine stores and returns it verbatim; report subsystems read it.
    """
    doing_well: List[str] = field(default_factory=list)
    priority_actions: List[Dict[str, Any]] = field(default_factory=list)
    areas_to_explore: List[str] = field(default_factory=list)
    professional_review: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self.__dict__)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["ModuleSummary"]:
        if data is None:
            return None
        return cls(**{k: copy.deepcopy(data.get(k, [])) for k in cls.__dataclass_fields__})


@dataclass
class Run:
    """
    One pass through a module's questionnaire.

    Invariants:
    - completed_at is set iff status == COMPLETED
    - responses may be empty only while status == NOT_STARTED

    Attributes:
        id: Creation-time-derived, sorts in creation order
        context: What the run was for
        started_at: ISO 8601 creation / start time
        status: RunStatus
        completed_at: ISO 8601 completion time
        responses: question_id -> Response
        summary: Caller-supplied summary at completion
        ownership: Ownership captured at completion
        confidence_snapshot: Computed at completion
        provisional: Implicit editing run with no explicit context yet
        archived: Current content is already captured in history.
            Cleared whenever the run is edited.
    """
    id: str
    context: RunContext
    started_at: str
    status: RunStatus = RunStatus.NOT_STARTED
    completed_at: Optional[str] = None
    responses: Dict[str, Response] = field(default_factory=dict)
    summary: Optional[ModuleSummary] = None
    ownership: ModuleOwnership = field(default_factory=ModuleOwnership)
    confidence_snapshot: Optional[ConfidenceSnapshot] = None
    provisional: bool = False
    archived: bool = False

    @property
    def response_count(self) -> int:
        return len(self.responses)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "context": self.context.to_dict(),
            "status": self.status.value,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "responses": [r.to_dict() for r in self.responses.values()],
            "summary": self.summary.to_dict() if self.summary else None,
            "ownership": self.ownership.to_dict(),
            "confidence_snapshot": self.confidence_snapshot.value if self.confidence_snapshot else None,
            "provisional": self.provisional,
            "archived": self.archived,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Run":
        responses = {}
        for raw in data.get("responses", []):
            response = Response.from_dict(raw)
            responses[response.question_id] = response

        snapshot = data.get("confidence_snapshot")
        return cls(
            id=data["id"],
            context=RunContext.from_dict(data.get("context", {"name": "Untitled"})),
            started_at=data.get("started_at") or utc_now_iso(),
            status=RunStatus(data.get("status", "not-started")),
            completed_at=data.get("completed_at"),
            responses=responses,
            summary=ModuleSummary.from_dict(data.get("summary")),
            ownership=ModuleOwnership.from_dict(data.get("ownership")),
            confidence_snapshot=ConfidenceSnapshot(snapshot) if snapshot else None,
            provisional=bool(data.get("provisional", False)),
            archived=bool(data.get("archived", False)),
        )


@dataclass
class ModuleProgress:
    """
    Progress record for one module of one subject.

    The run being edited is always a real entry of `runs`, referenced by
    active_run_id. No active run means the module is not started.
    """
    module_id: str
    module_code: str
    active_run_id: Optional[str] = None
    runs: List[Run] = field(default_factory=list)
    ownership: ModuleOwnership = field(default_factory=ModuleOwnership)

    def find_run(self, run_id: Optional[str]) -> Optional[Run]:
        if run_id is None:
            return None
        for run in self.runs:
            if run.id == run_id:
                return run
        return None

    @property
    def active_run(self) -> Optional[Run]:
        return self.find_run(self.active_run_id)

    @property
    def status(self) -> RunStatus:
        run = self.active_run
        return run.status if run is not None else RunStatus.NOT_STARTED

    @property
    def responses(self) -> Dict[str, Response]:
        run = self.active_run
        return dict(run.responses) if run is not None else {}

    @property
    def history(self) -> List[Run]:
        """Runs other than the one being edited, in creation order."""
        return [run for run in self.runs if run.id != self.active_run_id]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "module_id": self.module_id,
            "module_code": self.module_code,
            "active_run_id": self.active_run_id,
            "runs": [run.to_dict() for run in self.runs],
            "ownership": self.ownership.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModuleProgress":
        runs = [Run.from_dict(raw) for raw in data.get("runs", [])]
        progress = cls(
            module_id=data["module_id"],
            module_code=data.get("module_code", data["module_id"]),
            active_run_id=data.get("active_run_id"),
            runs=runs,
            ownership=ModuleOwnership.from_dict(data.get("ownership")),
        )
        # Dangling pointer from hand-edited or truncated data
        if progress.active_run_id is not None and progress.active_run is None:
            progress.active_run_id = None
        return progress


# =============================================================================
# Comparisons
# =============================================================================

@dataclass(frozen=True)
class RunComparison:
    """
    Structured diff between two runs. Produced on demand, never persisted
    by the engine.

    Attributes:
        run_a: Earlier run (baseline)
        run_b: Later run
        improvements: Questions scoring higher in run_b
        regressions: Questions scoring lower in run_b
        unchanged: Questions scoring the same
        new_questions: Questions answered in only one of the runs
        overall_trend: Trend
        score_change_percent: Change over comparable questions, one decimal
    """
    run_a: Run
    run_b: Run
    improvements: FrozenSet[str]
    regressions: FrozenSet[str]
    unchanged: FrozenSet[str]
    new_questions: FrozenSet[str]
    overall_trend: Trend
    score_change_percent: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_a": {"id": self.run_a.id, "context": self.run_a.context.to_dict()},
            "run_b": {"id": self.run_b.id, "context": self.run_b.context.to_dict()},
            "improvements": sorted(self.improvements),
            "regressions": sorted(self.regressions),
            "unchanged": sorted(self.unchanged),
            "new_questions": sorted(self.new_questions),
            "overall_trend": self.overall_trend.value,
            "score_change_percent": self.score_change_percent,
        }


@dataclass(frozen=True)
class ProgressSummary:
    """Rollup of several module comparisons."""
    total_improvements: int
    total_regressions: int
    overall_trend: Trend


def response_map(responses: Union[Dict[str, Response], Iterable[Response], None]) -> Dict[str, Response]:
    """
    Normalise responses to a question_id -> Response dict.

    Accepts a mapping (returned as a shallow copy), any iterable of
    Response (later entries win) or None.
    """
    if responses is None:
        return {}
    if isinstance(responses, dict):
        return dict(responses)
    result = {}
    for response in responses:
        result[response.question_id] = response
    return result
