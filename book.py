from __future__ import annotations


class Book:
    """Represents a single catalog title that can be lent out."""

    def __init__(self, title: str, author: str, id: int | None = None, stock: int = 0,
                 is_available: bool | None = None,
                 # Catalog metadata, opaque to the lending workflow
                 description: str | None = None, isbn: str | None = None,
                 publication_year: int | None = None, genre: str | None = None,
                 created_at: str | None = None, updated_at: str | None = None) -> None:
        self.id = id
        self.title = title.strip()
        self.author = author.strip()
        self.stock = int(stock)
        # Availability always follows the stock counter unless a stored value is loaded
        self.is_available = bool(is_available) if is_available is not None else self.stock > 0

        self.description = description
        self.isbn = isbn.strip() if isbn else isbn
        self.publication_year = publication_year
        self.genre = genre
        self.created_at = created_at
        self.updated_at = updated_at

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} (id: {self.id}, stock: {self.stock})"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "description": self.description,
            "isbn": self.isbn,
            "publication_year": self.publication_year,
            "genre": self.genre,
            "stock": self.stock,
            "is_available": self.is_available,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        # SQLite stores is_available as 0/1
        available = data.get("is_available")
        return Book(
            id=data.get("id"),
            title=data["title"],
            author=data["author"],
            stock=data.get("stock") or 0,
            is_available=bool(available) if available is not None else None,
            description=data.get("description"),
            isbn=data.get("isbn"),
            publication_year=data.get("publication_year"),
            genre=data.get("genre"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )
