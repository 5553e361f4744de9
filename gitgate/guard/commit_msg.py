"""
Conventional-commit grammar, as enforced by the commit-msg hook:

    type(scope)!: subject (task 11.2)
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

MAX_HEADER_LENGTH = 100
SCOPE_CHARS = r"A-Za-z0-9._/-"

TASK_SUFFIX = re.compile(r"\s\(task ([0-9]+(?:\.[0-9]+)*)\)$")

# Messages git writes itself; never rejected.
_GENERATED = re.compile(r"^(Merge |Revert \"|fixup! |squash! |amend! )")


@dataclass
class MessageCheck:
    valid: bool
    header: str = ""
    errors: list[str] = field(default_factory=list)


def header_pattern(types: list[str]) -> re.Pattern[str]:
    return re.compile(
        r"^(?P<type>" + "|".join(re.escape(t) for t in types) + r")"
        r"(?:\((?P<scope>[" + SCOPE_CHARS + r"]+)\))?"
        r"(?P<breaking>!)?"
        r": (?P<subject>\S.*)$"
    )


def strip_comments(message: str) -> str:
    lines = [line for line in message.splitlines() if not line.startswith("#")]
    return "\n".join(lines).strip()


def validate_message(
    message: str,
    types: list[str],
    require_task: bool = False,
    branch_task_id: str | None = None,
) -> MessageCheck:
    text = strip_comments(message)
    if not text:
        return MessageCheck(valid=False, errors=["Commit message is empty"])

    header = text.splitlines()[0].rstrip()
    if _GENERATED.match(header):
        return MessageCheck(valid=True, header=header)

    errors = []
    if not header_pattern(types).match(header):
        errors.append(
            f"Header does not follow 'type(scope): subject'. Allowed types: {', '.join(types)}"
        )
    if len(header) > MAX_HEADER_LENGTH:
        errors.append(f"Header is {len(header)} characters (max {MAX_HEADER_LENGTH})")

    lines = text.splitlines()
    if len(lines) > 1 and lines[1].strip():
        errors.append("Leave a blank line between header and body")

    if require_task and branch_task_id:
        match = TASK_SUFFIX.search(header)
        if not match:
            errors.append(f"Header must end with '(task {branch_task_id})'")
        elif match.group(1) != branch_task_id:
            errors.append(
                f"Header references task {match.group(1)} but branch is for task {branch_task_id}"
            )

    return MessageCheck(valid=not errors, header=header, errors=errors)
