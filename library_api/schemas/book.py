from typing import Annotated, ClassVar, Final

from bson import ObjectId
from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PlainSerializer,
    StrictBool,
    StrictInt,
    StrictStr,
    ValidationInfo,
    WithJsonSchema,
    field_validator,
)
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from library_api.schemas.validation import DocumentIn, RecordValidator, today_from
from library_api.utils.identifiers import format_identifier, is_identifier

MIN_PUBLISHED_YEAR: Final[int] = 1400

# Widest integer BSON can store
INT64_MIN: Final[int] = -(2**63)
INT64_MAX: Final[int] = 2**63 - 1


def _to_object_id(value: object) -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if not is_identifier(value):
        raise PydanticCustomError("object_id", "Must be a 24-character hex string")
    return ObjectId(value)


def _to_hex(value: object) -> object:
    return format_identifier(value) if isinstance(value, ObjectId) else value


# Stored as ObjectId, rendered as hex in JSON
ObjectIdField = Annotated[
    ObjectId,
    BeforeValidator(_to_object_id),
    PlainSerializer(format_identifier, return_type=str, when_used="json"),
    WithJsonSchema({"type": "string", "pattern": "^[0-9a-fA-F]{24}$"}),
]

HexId = Annotated[str, BeforeValidator(_to_hex)]


def _integral(value: object) -> object:
    # JSON has one number type; 310.0 is the integer 310
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


Int64 = Annotated[
    StrictInt,
    BeforeValidator(_integral),
    Field(ge=INT64_MIN, le=INT64_MAX),
]


# Book create/replace payload
class BookIn(DocumentIn):
    title: StrictStr = Field(min_length=1, examples=["The Hobbit"])
    isbn: StrictStr = Field(min_length=10, examples=["9780547928227"])
    author_id: ObjectIdField = Field(
        description="Author's ObjectId (24 hex chars)",
        examples=["665f6a0f2c3d4b1a9f0a1234"],
    )
    published_year: Int64 = Field(examples=[1937])
    genres: list[StrictStr] = Field(min_length=1, examples=[["Fantasy", "Classic"]])
    pages: Int64 = Field(gt=0, examples=[310])
    in_stock: StrictBool = Field(examples=[True])
    price: float = Field(ge=0, allow_inf_nan=False, examples=[14.99])

    @field_validator("published_year")
    @classmethod
    def year_in_range(cls, v: int, info: ValidationInfo) -> int:
        latest = today_from(info).year + 1
        if not MIN_PUBLISHED_YEAR <= v <= latest:
            raise PydanticCustomError(
                "year_range",
                "publishedYear must be between {min_year} and {max_year}",
                {"min_year": MIN_PUBLISHED_YEAR, "max_year": latest},
            )
        return v

    @field_validator("price", mode="before")
    @classmethod
    def price_is_number(cls, v: object) -> object:
        # bool is an int subclass
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise PydanticCustomError("float_type", "Input should be a valid number")
        return v


# Book read schema
class BookRead(BaseModel):
    id: HexId = Field(alias="_id", examples=["665f6a0f2c3d4b1a9f0a1234"])
    title: str
    isbn: str
    author_id: HexId
    published_year: int
    genres: list[str]
    pages: int
    in_stock: bool
    price: float

    model_config: ClassVar[ConfigDict] = ConfigDict(alias_generator=to_camel, extra="ignore")


book_validator = RecordValidator(BookIn)
