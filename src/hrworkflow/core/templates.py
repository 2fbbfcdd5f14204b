"""Workflow template registry."""

from __future__ import annotations

import threading
from typing import Any, Iterable

import pendulum
import structlog

from ..errors import NotFoundError, StateConflictError, ValidationError
from ..schemas import WorkflowPhase, WorkflowTemplate

DEFAULT_TEMPLATE_ID = "default-workflow"

DEFAULT_PHASES: list[dict[str, Any]] = [
    {
        "id": "cv_review",
        "name": "CV Review",
        "description": "Initial resume screening",
        "order": 1,
        "kind": "screening",
        "color": "#2196F3",
        "duration_minutes": 15,
        "required_documents": ["cv"],
        "required_interviewers": [],
        "sla_hours": 24,
    },
    {
        "id": "phone_screening",
        "name": "Phone Screening",
        "description": "Screening phone call",
        "order": 2,
        "kind": "screening",
        "color": "#FF9800",
        "duration_minutes": 30,
        "required_documents": ["cv"],
        "required_interviewers": ["recruiter"],
        "sla_hours": 72,
    },
    {
        "id": "technical_interview",
        "name": "Technical Interview",
        "description": "Technical skills assessment",
        "order": 3,
        "kind": "technical",
        "color": "#9C27B0",
        "duration_minutes": 90,
        "required_documents": ["cv", "technical_assessment"],
        "required_interviewers": ["tech_lead", "senior_developer"],
        "sla_hours": 120,
    },
    {
        "id": "cultural_fit",
        "name": "Cultural Fit",
        "description": "Culture and team fit interview",
        "order": 4,
        "kind": "cultural",
        "color": "#4CAF50",
        "duration_minutes": 60,
        "required_documents": ["cv"],
        "required_interviewers": ["hr_manager", "team_lead"],
        "sla_hours": 96,
    },
    {
        "id": "final_decision",
        "name": "Final Decision",
        "description": "Final decision and offer preparation",
        "order": 5,
        "kind": "final",
        "color": "#E91E63",
        "duration_minutes": 30,
        "required_documents": ["all_feedback"],
        "required_interviewers": ["hiring_manager"],
        "sla_hours": 48,
    },
]


def default_template() -> WorkflowTemplate:
    """Return the built-in standard hiring process."""
    return WorkflowTemplate(
        id=DEFAULT_TEMPLATE_ID,
        name="Standard Hiring Process",
        description="Standard hiring process for technical positions",
        phases=[WorkflowPhase.model_validate(phase) for phase in DEFAULT_PHASES],
        position_types=["developer", "engineer", "designer"],
        is_default=True,
    )


class TemplateRegistry:
    """Holds workflow templates keyed by id.

    Templates are replaced wholesale on update; candidate states keep
    referencing phase ids, so changes only affect moves made afterwards.
    """

    def __init__(
        self,
        templates: Iterable[WorkflowTemplate | dict[str, Any]] | None = None,
        *,
        default_id: str | None = None,
    ):
        self._templates: dict[str, WorkflowTemplate] = {}
        self._default_id = default_id
        self._lock = threading.Lock()
        self._logger = structlog.get_logger(__name__)
        for template in templates or [default_template()]:
            self.register(template)

    def register(self, template: WorkflowTemplate | dict[str, Any]) -> WorkflowTemplate:
        parsed = self._parse(template)
        with self._lock:
            if parsed.is_default:
                for tid, existing in list(self._templates.items()):
                    if existing.is_default and tid != parsed.id:
                        self._templates[tid] = existing.model_copy(update={"is_default": False})
            self._templates[parsed.id] = parsed
        self._logger.info(
            "templates.registered",
            template_id=parsed.id,
            phases=parsed.phase_ids(),
            is_default=parsed.is_default,
        )
        return parsed

    def update(self, template_id: str, changes: dict[str, Any]) -> WorkflowTemplate:
        current = self.get(template_id)
        payload = current.model_dump(mode="python")
        payload.update({k: v for k, v in changes.items() if k not in {"id", "created_at"}})
        payload["updated_at"] = pendulum.now("UTC")
        return self.register(payload)

    def remove(self, template_id: str) -> None:
        template = self.get(template_id)
        if template.is_default:
            raise StateConflictError(f"Cannot delete the default template {template_id!r}")
        with self._lock:
            self._templates.pop(template_id, None)
        self._logger.info("templates.removed", template_id=template_id)

    def get(self, template_id: str) -> WorkflowTemplate:
        try:
            return self._templates[template_id]
        except KeyError as exc:
            raise NotFoundError(f"Workflow template not found: {template_id!r}") from exc

    def default(self) -> WorkflowTemplate:
        if self._default_id is not None and self._default_id in self._templates:
            return self._templates[self._default_id]
        for template in self._templates.values():
            if template.is_default:
                return template
        if DEFAULT_TEMPLATE_ID in self._templates:
            return self._templates[DEFAULT_TEMPLATE_ID]
        if not self._templates:
            raise NotFoundError("No workflow templates registered")
        return next(iter(self._templates.values()))

    def resolve(self, template_id: str | None) -> WorkflowTemplate:
        return self.default() if template_id is None else self.get(template_id)

    def for_position(self, position_type: str) -> WorkflowTemplate:
        wanted = position_type.strip().lower()
        for template in self._templates.values():
            if wanted in (p.lower() for p in template.position_types):
                return template
        return self.default()

    def list_templates(self) -> list[WorkflowTemplate]:
        return list(self._templates.values())

    @staticmethod
    def _parse(template: WorkflowTemplate | dict[str, Any]) -> WorkflowTemplate:
        if isinstance(template, WorkflowTemplate):
            return template
        try:
            return WorkflowTemplate.model_validate(template)
        except ValueError as exc:
            raise ValidationError(f"Invalid workflow template: {exc}") from exc


__all__ = ["DEFAULT_TEMPLATE_ID", "TemplateRegistry", "default_template"]
