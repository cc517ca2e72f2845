"""Explicit evaluation context passed into every engine call."""

from __future__ import annotations

import os
import posixpath
from typing import Optional

from pydantic import BaseModel, ConfigDict


class EvaluationContext(BaseModel):
    """Where an evaluation happens and which permission lists apply.

    Everything the matcher and risk assessor would otherwise read from the
    environment lives here, so evaluations stay pure and testable.

    >>> ctx = EvaluationContext(cwd="/home/u/workspace/app", home_dir="/home/u")
    >>> ctx.workspace
    '/home/u/workspace'
    """

    model_config = ConfigDict(frozen=True)

    cwd: str
    home_dir: str
    workspace_dir: Optional[str] = None
    allow_list: tuple[str, ...] = ()
    deny_list: tuple[str, ...] = ()

    @property
    def workspace(self) -> str:
        return self.workspace_dir or posixpath.join(self.home_dir, "workspace")

    @classmethod
    def from_environment(
        cls,
        cwd: Optional[str] = None,
        allow_list=(),
        deny_list=(),
    ) -> "EvaluationContext":
        """Build a context from the running process (current dir, $HOME)."""
        return cls(
            cwd=cwd or os.getcwd(),
            home_dir=os.path.expanduser("~"),
            workspace_dir=os.environ.get("GATEKEEPER_WORKSPACE_DIR") or None,
            allow_list=tuple(allow_list),
            deny_list=tuple(deny_list),
        )
