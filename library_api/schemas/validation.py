from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError, ValidationInfo
from pydantic.alias_generators import to_camel

from library_api.core.errors import FieldError


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def today_from(info: ValidationInfo) -> date:
    """Reference date for moving bounds, taken from the validation context."""
    context = info.context or {}
    today = context.get("today")
    return today if isinstance(today, date) else utc_today()


# Input document base
class DocumentIn(BaseModel):
    """
    Inbound payload for one collection.

    Field names are camelCase on the wire and in the store; unknown keys
    (including `_id`) are rejected.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(
        alias_generator=to_camel,
        extra="forbid",
        arbitrary_types_allowed=True,
    )

    def to_document(self) -> dict[str, Any]:
        """BSON-ready mapping for insert/replace."""
        return self.model_dump(by_alias=True, exclude_none=True)


ModelT = TypeVar("ModelT", bound=DocumentIn)


@dataclass(frozen=True)
class ValidationOutcome(Generic[ModelT]):
    record: ModelT | None = None
    errors: list[FieldError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.record is not None and not self.errors


def _field_path(loc: tuple[int | str, ...]) -> str:
    return ".".join(str(part) for part in loc) or "body"


def field_errors(exc: ValidationError) -> list[FieldError]:
    return [
        FieldError(field=_field_path(err["loc"]), message=err["msg"], type=err["type"])
        for err in exc.errors(include_url=False)
    ]


class RecordValidator(Generic[ModelT]):
    """Validates and normalizes raw payloads without raising on bad input."""

    def __init__(self, model: type[ModelT]):
        self.model: type[ModelT] = model

    def validate(self, payload: object, today: date | None = None) -> ValidationOutcome[ModelT]:
        if not isinstance(payload, dict):
            return ValidationOutcome(
                errors=[
                    FieldError(
                        field="body",
                        message="Request body must be a JSON object",
                        type="model_type",
                    )
                ]
            )
        try:
            record = self.model.model_validate(
                payload, context={"today": today or utc_today()}
            )
        except ValidationError as exc:
            return ValidationOutcome(errors=field_errors(exc))
        return ValidationOutcome(record=record)
