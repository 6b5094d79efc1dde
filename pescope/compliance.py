from __future__ import annotations

from typing import Iterable, List

from pescope.model import ComplianceVerdict, KnownStandard, UnknownSection
from pescope.standards import Characteristic, lookup


def validate(name: str, actual: Iterable[Characteristic]) -> ComplianceVerdict:
    """
    Judge a section's declared characteristics against the standards table.

    - unknown name: every tag is reported as-is, in input order
    - known name: tags split into matched / unexpected, input order kept
    Expected tags missing from `actual` are not flagged.
    `name` must already be trimmed of NUL padding.
    """
    tags: List[Characteristic] = list(actual)
    expected = lookup(name)
    if expected is None:
        return UnknownSection(name=name, characteristics=tags)

    matched: List[Characteristic] = []
    unexpected: List[Characteristic] = []
    for tag in tags:
        if tag in expected:
            matched.append(tag)
        else:
            unexpected.append(tag)
    return KnownStandard(name=name, matched=matched, unexpected=unexpected)
