"""Page of results returned by paged searches."""

from __future__ import annotations

from docrepo.models.base import Model


class Page(Model):
    """
    Common part of every page: where it starts and how many matches exist.

    Subclasses add the list of found values under their own key. That key is
    absent when the page is empty.
    """

    offset: int = 0
    total: int = 0
