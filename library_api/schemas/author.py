import re
from datetime import date, datetime, time, timezone
from typing import Annotated, Any, ClassVar, Final

from pydantic import (
    AfterValidator,
    AnyUrl,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    EmailStr,
    Field,
    StrictStr,
    StringConstraints,
    TypeAdapter,
    ValidationError,
    ValidationInfo,
    WithJsonSchema,
    field_validator,
)
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from library_api.schemas.book import HexId
from library_api.schemas.validation import DocumentIn, RecordValidator, today_from

_FULL_DATE_RE: Final[re.Pattern[str]] = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_URL_ADAPTER: Final[TypeAdapter[AnyUrl]] = TypeAdapter(AnyUrl)

NonEmptyTrimmed = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, strict=True)]
LowercaseEmail = Annotated[EmailStr, AfterValidator(lambda v: v.strip().lower())]
BirthDate = Annotated[date, WithJsonSchema({"type": "string", "format": "date"})]


def _as_date(value: object) -> object:
    if isinstance(value, datetime):
        return value.date()
    return value


# Author create/replace payload
class AuthorIn(DocumentIn):
    first_name: NonEmptyTrimmed = Field(examples=["J.R.R."])
    last_name: NonEmptyTrimmed = Field(examples=["Tolkien"])
    email: LowercaseEmail = Field(examples=["tolkien@example.com"])
    birthdate: BirthDate = Field(examples=["1892-01-03"])
    nationality: NonEmptyTrimmed = Field(examples=["British"])
    website: StrictStr | None = Field(
        default=None,
        json_schema_extra={"format": "uri"},
        examples=["https://tolkien.co.uk"],
    )

    @field_validator("birthdate", mode="before")
    @classmethod
    def parse_full_date(cls, v: object) -> object:
        if isinstance(v, date) and not isinstance(v, datetime):
            return v
        if not isinstance(v, str) or not _FULL_DATE_RE.fullmatch(v):
            raise PydanticCustomError("date_format", "birthdate must be a YYYY-MM-DD date")
        try:
            return date.fromisoformat(v)
        except ValueError:
            raise PydanticCustomError("date_value", "birthdate is not a valid calendar date")

    @field_validator("birthdate")
    @classmethod
    def not_in_future(cls, v: date, info: ValidationInfo) -> date:
        if v > today_from(info):
            raise PydanticCustomError("date_future", "birthdate cannot be in the future")
        return v

    @field_validator("website")
    @classmethod
    def valid_url(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        try:
            _ = _URL_ADAPTER.validate_python(v)
        except ValidationError:
            raise PydanticCustomError("url_parsing", "website must be a valid URL")
        return v

    def to_document(self) -> dict[str, Any]:
        doc = super().to_document()
        # BSON has no plain date type
        doc["birthdate"] = datetime.combine(self.birthdate, time.min, tzinfo=timezone.utc)
        return doc


# Author read schema
class AuthorRead(BaseModel):
    id: HexId = Field(alias="_id", examples=["665f6a0f2c3d4b1a9f0a1234"])
    first_name: str
    last_name: str
    email: str
    birthdate: Annotated[date, BeforeValidator(_as_date)]
    nationality: str
    website: str | None = None

    model_config: ClassVar[ConfigDict] = ConfigDict(alias_generator=to_camel, extra="ignore")


author_validator = RecordValidator(AuthorIn)
