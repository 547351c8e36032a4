"""Wiki-level exceptions."""


class WikiError(Exception):
    """Base class for all wiki exceptions."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class PageNotFoundError(WikiError):
    """Raised when a page has no file in the store."""

    def __init__(self, title: str):
        self.title = title
        super().__init__(f"Page '{title}' not found.")


class InvalidTitleError(WikiError):
    """Raised when a title cannot be used as a filename."""

    def __init__(self, title: str, reason: str):
        self.title = title
        super().__init__(f"Invalid page title {title!r}: {reason}")
