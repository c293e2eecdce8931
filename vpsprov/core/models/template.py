"""
Generated file model — used by all artifact generators.
"""

from __future__ import annotations

from pydantic import BaseModel


class GeneratedFile(BaseModel):
    """A file a step writes onto the target host.

    Attributes:
        path:    Absolute path on the host.
        content: Full file content.
        mode:    Octal permission string applied after writing, if any.
        owner:   ``user:group`` applied after writing, if any.
        reason:  Why this file exists.
    """

    path: str
    content: str
    mode: str | None = None
    owner: str | None = None
    reason: str = ""
