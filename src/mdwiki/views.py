"""Template lookup for the wiki's views."""

import logging
from enum import Enum

from jinja2 import Environment, Template, TemplateError

logger = logging.getLogger(__name__)


class View(str, Enum):
    """Page views, each backed by a template extending ``layout.html``."""

    HOME = "home.html"
    VIEW = "view.html"
    EDIT = "edit.html"


def compile_views(env: Environment) -> dict[View, Template]:
    """Load and compile the template for every view.

    Raises:
        TemplateError: If a template is missing or malformed.
    """
    views = {}
    for view in View:
        try:
            views[view] = env.get_template(view.value)
        except TemplateError:
            logger.exception("Failed to load template %s", view.value)
            raise
    return views
