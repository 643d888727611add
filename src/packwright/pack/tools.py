"""
External tool checks for packs that declare tool dependencies.

A manifest may list tools its components call (ast-grep, ripgrep, ...):

    "dependencies": {
        "packs": ["essentials"],
        "tools": [{"name": "ripgrep", "required": false,
                   "installCommand": "brew install ripgrep"}]
    }

Tools are looked up on PATH only; nothing is executed. Missing tools are
reported as install guidance and never fail an install.
"""

import logging
import shutil
from collections.abc import Callable
from dataclasses import dataclass

from packwright.pack.manifest import ToolDependency


logger = logging.getLogger(__name__)

# Tool name -> executables that provide it
KNOWN_EXECUTABLES: dict[str, tuple[str, ...]] = {
    "@ast-grep/cli": ("ast-grep", "sg"),
    "ast-grep": ("ast-grep", "sg"),
    "ripgrep": ("rg",),
    "rg": ("rg",),
}


@dataclass(frozen=True)
class ToolCheckResult:
    """Outcome of looking up one tool."""

    tool: ToolDependency
    path: str | None = None

    @property
    def available(self) -> bool:
        return self.path is not None


class ToolDependencyChecker:
    """
    Looks up declared tools and turns the gaps into warnings.

    Example:
        >>> checker = ToolDependencyChecker()
        >>> results = checker.check(manifest.tool_dependencies)
        >>> checker.guidance(results)
        ['This pack requires 1 tool that is not installed: ast-grep', ...]
    """

    def __init__(self, which: Callable[[str], str | None] = shutil.which) -> None:
        self._which = which

    def executables_for(self, tool: ToolDependency) -> tuple[str, ...]:
        return KNOWN_EXECUTABLES.get(tool.name, (tool.name,))

    def check(self, tools: list[ToolDependency]) -> list[ToolCheckResult]:
        results = []
        for tool in tools:
            path = None
            for executable in self.executables_for(tool):
                path = self._which(executable)
                if path is not None:
                    break
            if path is not None:
                logger.debug("Tool %s found at %s", tool.name, path)
            elif tool.required:
                logger.warning("Required tool %s is not available", tool.name)
            else:
                logger.debug("Optional tool %s is not available", tool.name)
            results.append(ToolCheckResult(tool=tool, path=path))
        return results

    def guidance(self, results: list[ToolCheckResult]) -> list[str]:
        """
        Summarize missing tools, required ones first.

        Returns:
            A summary line per group of missing tools, followed by one
            "Install <tool>: <command>" line for each tool that declares a
            command. Empty when every tool is available.
        """
        required = [r.tool for r in results if not r.available and r.tool.required]
        optional = [r.tool for r in results if not r.available and not r.tool.required]

        messages = []
        if required:
            names = ", ".join(tool.name for tool in required)
            noun = "tool that is" if len(required) == 1 else "tools that are"
            messages.append(f"This pack requires {len(required)} {noun} not installed: {names}")
        if optional:
            names = ", ".join(tool.name for tool in optional)
            noun = "optional tool" if len(optional) == 1 else "optional tools"
            messages.append(f"This pack can benefit from {len(optional)} {noun}: {names}")

        for tool in required + optional:
            if tool.install_command:
                messages.append(f"Install {tool.name}: {tool.install_command}")
        return messages
