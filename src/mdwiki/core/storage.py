"""Storage abstraction for wiki pages."""

import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

from mdwiki.core.exceptions import InvalidTitleError, PageNotFoundError, WikiError
from mdwiki.core.models import Page
from mdwiki.core.renderer import Renderer

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 200
PAGE_SUFFIX = ".md"


def validate_title(title: str) -> str:
    """Return ``title`` if it is safe to use as a filename.

    Raises:
        InvalidTitleError: If the title is empty, too long, starts with a dot,
            ends in the page suffix, or contains a path separator or a control
            character.
    """
    if not title:
        raise InvalidTitleError(title, "title is empty")
    if len(title) > MAX_TITLE_LENGTH:
        raise InvalidTitleError(title, f"longer than {MAX_TITLE_LENGTH} characters")
    for char in ("/", "\\"):
        if char in title:
            raise InvalidTitleError(title, f"contains {char!r}")
    # Also rules out "." and "..".
    if title.startswith("."):
        raise InvalidTitleError(title, "starts with '.'")
    if title.lower().endswith(PAGE_SUFFIX):
        raise InvalidTitleError(title, f"ends with {PAGE_SUFFIX!r}")
    if any(ord(c) < 32 or ord(c) == 127 for c in title):
        raise InvalidTitleError(title, "contains a control character")
    return title


class Storage(ABC):
    """Abstract base class for page storage."""

    @abstractmethod
    def save(self, title: str, body: bytes) -> Page:
        """Save a page's raw markdown. Creates or replaces it."""
        ...

    @abstractmethod
    def load_raw(self, title: str) -> Page:
        """Load a page's raw markdown. Raises PageNotFoundError if absent."""
        ...

    @abstractmethod
    def load_rendered(self, title: str) -> Page:
        """Load a page with its body rendered to HTML."""
        ...

    @abstractmethod
    def list_titles(self) -> list[str]:
        """List all stored page titles."""
        ...

    @abstractmethod
    def list_pages(self) -> list[Page]:
        """List all pages with rendered bodies, skipping unreadable ones."""
        ...

    @abstractmethod
    def page_exists(self, title: str) -> bool:
        """Check if a page exists."""
        ...


class FileStorage(Storage):
    """File-based storage implementation.

    Pages are stored as Markdown files without frontmatter.
    File naming: <title>.md
    """

    SUFFIX = PAGE_SUFFIX

    def __init__(
        self,
        base_path: Path,
        renderer: Renderer | None = None,
        log: logging.Logger | None = None,
    ):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.renderer = renderer or Renderer(page_exists=self.page_exists)
        self.log = log or logger

    def _get_path(self, title: str) -> Path:
        """Get full path for a page."""
        return self.base_path / (validate_title(title) + self.SUFFIX)

    def save(self, title: str, body: bytes) -> Page:
        """Write ``body`` to a temporary file, then rename it over the page."""
        path = self._get_path(title)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=self.base_path
        )
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(body)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        self.log.debug("Saved page %s (%d bytes)", title, len(body))
        return Page(title=title, body=body)

    def load_raw(self, title: str) -> Page:
        """Load a page's raw markdown."""
        path = self._get_path(title)
        try:
            body = path.read_bytes()
        except FileNotFoundError as exc:
            raise PageNotFoundError(title) from exc
        return Page(title=title, body=body)

    def load_rendered(self, title: str) -> Page:
        """Load a page and render its body to HTML."""
        page = self.load_raw(title)
        return Page(title=title, body=self.renderer.render(page.body))

    def list_titles(self) -> list[str]:
        """List page titles, cutting each filename at its first dot."""
        titles = set()
        for entry in self.base_path.iterdir():
            name = entry.name
            if name.startswith(".") or "." not in name:
                continue
            titles.add(name.split(".", 1)[0])
        return sorted(titles)

    def list_pages(self) -> list[Page]:
        """List all pages with rendered bodies."""
        try:
            titles = self.list_titles()
        except OSError:
            self.log.exception("Error loading pages from %s", self.base_path)
            return []

        pages = []
        for title in titles:
            try:
                pages.append(self.load_rendered(title))
            except (OSError, ValueError, WikiError) as exc:
                self.log.error("Error loading page %s: %s", title, exc)
        return pages

    def page_exists(self, title: str) -> bool:
        """Check if a page exists."""
        try:
            return self._get_path(title).is_file()
        except InvalidTitleError:
            return False
