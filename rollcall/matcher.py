from __future__ import annotations
"""
Resolve a parsed identifier against the live registrant snapshot.

Two passes over the snapshot, first hit wins:
  1) normalized primary id
  2) any normalized secondary id
A primary-id hit always beats a secondary-id hit, wherever it sits in the list.
"""

from typing import Iterable, Optional, Sequence

from .identifiers import normalize
from .models import Registrant


def match_registrant(parsed_id: str, directory: Iterable[Registrant]) -> Optional[Registrant]:
    """Return the matching Registrant, or None when nobody matches."""
    target = normalize(parsed_id)
    if not target:
        return None

    snapshot: Sequence[Registrant] = directory if isinstance(directory, (list, tuple)) else list(directory)

    for reg in snapshot:
        if normalize(reg.primary_id) == target:
            return reg

    for reg in snapshot:
        if any(normalize(s) == target for s in reg.secondary_ids):
            return reg

    return None
