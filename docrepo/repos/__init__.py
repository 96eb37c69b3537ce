"""
Repository layer for docrepo.

All store access lives here and ONLY here. No driver calls outside this module.
"""

from docrepo.repos.base import Repository
from docrepo.repos.user_repo import UserRepo

__all__ = [
    "Repository",
    "UserRepo",
]
