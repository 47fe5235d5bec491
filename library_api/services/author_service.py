from library_api.schemas.author import AuthorIn, AuthorRead, author_validator
from library_api.services.resource_service import ResourceService

AuthorService = ResourceService[AuthorIn, AuthorRead]

author_service: AuthorService = ResourceService(
    collection="authors",
    validator=author_validator,
    read_model=AuthorRead,
    not_found_message="Author not found",
)
