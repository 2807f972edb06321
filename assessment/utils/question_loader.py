"""
Questionnaire loader - builds Module / Question contracts from JSON config

Responsibilities:
- Load the questionnaire file once per session
- Validate structure, fail fast with every problem listed
- Accept both snake_case keys and the authoring tool's camelCase keys

File layout:
    {
      "version": "...",
      "modules": [
        {"id": "...", "code": "1.1", "name": "...", "questions": [ {...}, ... ]}
      ]
    }

Conditions that reference unknown questions are NOT errors: questionnaires
evolve and stale references degrade to "unsatisfied" at runtime. They are
logged as warnings so authors can clean them up.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from assessment.contracts import (
    QUESTION_TYPE_ALIASES,
    ImpactLevel,
    Module,
    Question,
    QuestionOption,
    QuestionType,
    VisibilityCondition,
)
from assessment.utils.review_modes import ReviewDepth, parse_review_depth

logger = logging.getLogger(__name__)

DEFAULT_QUESTIONNAIRE_PATH = "data/questionnaire.json"


def load_questionnaire(path: str = DEFAULT_QUESTIONNAIRE_PATH) -> Dict[str, Module]:
    """
    Load and validate a questionnaire file.

    Args:
        path: Path to questionnaire JSON

    Returns:
        dict: module_id -> Module, in file order

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If validation fails
    """
    questionnaire_path = Path(path)
    if not questionnaire_path.exists():
        raise FileNotFoundError(f"Questionnaire not found: {path}")

    with open(questionnaire_path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    modules = parse_questionnaire(data)
    total = sum(len(m.questions) for m in modules.values())
    logger.info(f"Loaded questionnaire {questionnaire_path.name}: {len(modules)} modules, {total} questions")
    return modules


def parse_questionnaire(data: Dict[str, Any]) -> Dict[str, Module]:
    """
    Build modules from already-parsed questionnaire JSON.

    Raises:
        ValueError: If validation fails (message lists every problem)
    """
    errors: List[str] = []
    modules: Dict[str, Module] = {}
    all_question_ids = set()

    raw_modules = data.get("modules")
    if not raw_modules:
        raise ValueError("Questionnaire validation failed:\n  - Missing 'modules'")

    for m_index, raw_module in enumerate(raw_modules):
        module_id = raw_module.get("id")
        if not module_id:
            errors.append(f"Module at index {m_index} missing 'id'")
            continue
        if module_id in modules:
            errors.append(f"Duplicate module id '{module_id}'")
            continue

        questions = []
        for q_index, raw_question in enumerate(raw_module.get("questions", [])):
            q_id = raw_question.get("id")
            if not q_id:
                errors.append(f"Question at index {q_index} in module '{module_id}' missing 'id'")
                continue
            if q_id in all_question_ids:
                errors.append(f"Duplicate question id '{q_id}'")
                continue
            all_question_ids.add(q_id)

            try:
                questions.append(parse_question(raw_question))
            except (ValueError, KeyError, TypeError) as e:
                errors.append(f"Question '{q_id}' in module '{module_id}': {e}")

        modules[module_id] = Module(
            id=module_id,
            code=raw_module.get("code", module_id),
            name=raw_module.get("name", module_id),
            questions=tuple(questions),
        )

    if errors:
        error_msg = "Questionnaire validation failed:\n  - " + "\n  - ".join(errors)
        raise ValueError(error_msg)

    _warn_stale_references(modules, all_question_ids)
    return modules


def parse_question(raw: Dict[str, Any]) -> Question:
    """
    Build a Question from its config dict.

    Raises:
        ValueError: If type, review depth or impact level is unknown
    """
    raw_type = raw.get("type", QuestionType.YES_NO_UNSURE.value)
    q_type = QUESTION_TYPE_ALIASES.get(raw_type) or QuestionType(raw_type)

    raw_depth = raw.get("review_depth", raw.get("reviewMode", raw.get("reviewDepth")))
    review_depth = parse_review_depth(raw_depth) if raw_depth else ReviewDepth.BOTH

    raw_impact = raw.get("impact_level", raw.get("impactLevel"))

    options = tuple(
        QuestionOption(id=o["id"], label=o.get("label", o["id"]), sentiment=o.get("sentiment"))
        for o in raw.get("options", [])
    )

    return Question(
        id=raw["id"],
        text=raw.get("text", ""),
        type=q_type,
        review_depth=review_depth,
        category=raw.get("category"),
        impact_level=ImpactLevel(raw_impact) if raw_impact else None,
        safety_related=bool(raw.get("safety_related", raw.get("safetyRelated", False))),
        is_entry_point=bool(raw.get("is_entry_point", raw.get("isEntryPoint", False))),
        visibility_condition=_parse_condition(raw.get("visibility_condition", raw.get("showWhen"))),
        hide_condition=_parse_condition(raw.get("hide_condition", raw.get("hideWhen"))),
        options=options,
        measurement_unit=raw.get("measurement_unit", raw.get("measurementUnit")),
        help_text=raw.get("help_text", raw.get("helpText")),
    )


def _parse_condition(raw: Optional[Dict[str, Any]]) -> Optional[VisibilityCondition]:
    if not raw:
        return None
    return VisibilityCondition.from_dict(raw)


def _warn_stale_references(modules: Dict[str, Module], known_ids: set) -> None:
    for module in modules.values():
        for question in module.questions:
            for condition in (question.visibility_condition, question.hide_condition):
                for ref in _referenced_ids(condition):
                    if ref not in known_ids:
                        logger.warning(
                            f"Question '{question.id}' references unknown question '{ref}' "
                            f"(condition will never be satisfied)"
                        )


def _referenced_ids(condition: Optional[VisibilityCondition]) -> List[str]:
    if condition is None:
        return []
    ids = [condition.question_id]
    for alt in condition.or_conditions:
        ids.extend(_referenced_ids(alt))
    return ids
