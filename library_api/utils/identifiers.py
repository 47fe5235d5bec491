import re
from typing import Final

from bson import ObjectId

from library_api.core.errors import InvalidIdentifier

_IDENTIFIER_RE: Final[re.Pattern[str]] = re.compile(r"^[0-9a-fA-F]{24}$")


def is_identifier(raw: object) -> bool:
    """True when `raw` is a 24-character hex string."""
    return isinstance(raw, str) and _IDENTIFIER_RE.fullmatch(raw) is not None


def parse_identifier(raw: object) -> ObjectId:
    """
    Parse a path segment into an ObjectId.

    Only 24 hex characters are accepted; `ObjectId` itself would also take
    12-byte values, which are not valid on the wire.
    """
    if not is_identifier(raw):
        raise InvalidIdentifier()
    return ObjectId(raw)


def format_identifier(oid: ObjectId) -> str:
    # lowercase hex
    return str(oid)
