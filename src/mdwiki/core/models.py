"""Data models for MdWiki."""

from pydantic import BaseModel


class Page(BaseModel):
    """Represents a wiki page.

    ``body`` holds raw markdown when the page was loaded for editing and
    rendered HTML when it was loaded for viewing.
    """

    title: str
    body: bytes = b""
    exists: bool = True

    @property
    def text(self) -> str:
        """Return the body decoded as UTF-8."""
        return self.body.decode("utf-8", errors="replace")
