"""
Command output formatting.

Turns a successful command.execute response into user-facing markdown
when the output category is one we can present without an LLM. Anything
else returns None and is handed to the answer node for interpretation.

    output interpreted remotely   → used as-is
    network + ifconfig.me/...     → "Your IP address is: **1.2.3.4**"
    system_info + --version       → "**node** version: **v20.1.0**"
    file_read + ls                → fenced code block
    file_search / find / mdfind   → bullet list of paths
"""

import re
from typing import Any, Dict, List, Optional


REMOTE_INTERPRETATION_SOURCES = {"gemini", "llm"}
MAX_LISTED_FILES = 20

_IP_COMMAND = re.compile(r"ifconfig\.me|ipconfig|ifconfig")
# -v and -V stay case-sensitive: -V is a different flag for some tools
_VERSION_FLAGS = [
    re.compile(r"\s+--version(\s|$)"),
    re.compile(r"\s+-v(\s|$)"),
    re.compile(r"\s+-V(\s|$)"),
    re.compile(r"\s+version(\s|$)"),
]
_LIST_COMMAND = re.compile(r"^(ls|ll|la)\b")
_SEARCH_COMMAND = re.compile(r"^(find|mdfind|locate)\b")


def is_version_command(command: str) -> bool:
    return any(pattern.search(command) for pattern in _VERSION_FLAGS)


def format_file_list(raw: str) -> str:
    paths = [line.strip() for line in raw.splitlines() if line.strip()]
    if not paths:
        return "No matching files found."
    lines: List[str] = [f"Found {len(paths)} file{'s' if len(paths) != 1 else ''}:", ""]
    lines.extend(f"- `{path}`" for path in paths[:MAX_LISTED_FILES])
    if len(paths) > MAX_LISTED_FILES:
        lines.append(f"- ...and {len(paths) - MAX_LISTED_FILES} more")
    return "\n".join(lines)


def format_command_output(response: Dict[str, Any]) -> Optional[str]:
    """
    Deterministic answer for a successful command.execute response.

    Returns:
        Markdown answer, or None when the output needs interpretation
    """
    output = response.get("output") or ""
    raw = (response.get("rawOutput") or output or "").strip()
    command = (response.get("executedCommand") or "").strip()
    category = response.get("category")

    if response.get("outputInterpretationSource") in REMOTE_INTERPRETATION_SOURCES and output:
        return output

    if category == "file_search" or _SEARCH_COMMAND.match(command):
        return format_file_list(raw)

    if not raw:
        return None

    if category == "network" and _IP_COMMAND.search(command):
        return f"Your IP address is: **{raw}**"

    if category == "system_info" and command and is_version_command(command):
        tool = command.split()[0]
        return f"**{tool}** version: **{raw}**"

    if category == "file_read" and _LIST_COMMAND.match(command):
        return f"```\n{raw}\n```"

    return None
