from library_api.schemas.book import BookIn, BookRead, book_validator
from library_api.services.resource_service import ResourceService

BookService = ResourceService[BookIn, BookRead]

book_service: BookService = ResourceService(
    collection="books",
    validator=book_validator,
    read_model=BookRead,
    not_found_message="Book not found",
)
