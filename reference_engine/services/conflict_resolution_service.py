"""Field-level conflict proposals and patches for duplicate references."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from reference_engine.core.models import (
    ConflictResolution,
    FieldConflict,
    Recommendation,
    ResolutionPolicy,
)
from reference_engine.services.result_merge_service import merge_authors
from reference_engine.storage.models import ReferenceInput, ReferenceRecord

logger = logging.getLogger(__name__)

COMPARABLE_FIELDS = (
    "title",
    "authors",
    "journal",
    "doi",
    "url",
    "publication_date",
    "volume",
    "issue",
    "pages",
)
FILL_GAP_FIELDS = frozenset({"doi", "url"})
LONGER_WINS_FIELDS = frozenset({"title", "authors"})

Overrides = Mapping[str, Recommendation | str]


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set)):
        return len(value) == 0
    return False


def candidate_fields(candidate: ReferenceInput | Mapping[str, Any]) -> Dict[str, Any]:
    """Non-empty comparable values of ``candidate``."""

    if isinstance(candidate, ReferenceInput):
        data = candidate.model_dump()
    else:
        data = dict(candidate)
    return {
        name: data[name]
        for name in COMPARABLE_FIELDS
        if name in data and not _is_empty(data[name])
    }


class ConflictResolutionService:
    """Diff a stored reference against a duplicate candidate and build patches.

    Proposals never touch the store. :meth:`apply_resolution` returns a patch
    for ``ReferenceStore.update_reference``; the existing record is never
    deleted or replaced wholesale.
    """

    def propose_resolution(
        self,
        existing: ReferenceRecord,
        candidate: ReferenceInput | Mapping[str, Any],
    ) -> ConflictResolution:
        values = candidate_fields(candidate)
        conflicts: List[FieldConflict] = []
        for name, new_value in values.items():
            existing_value = getattr(existing, name, None)
            if existing_value == new_value:
                continue
            conflicts.append(
                FieldConflict(
                    field=name,
                    existing_value=existing_value,
                    new_value=new_value,
                    recommendation=self.recommend(name, existing_value, new_value),
                )
            )
        return ConflictResolution(
            existing_reference=existing,
            candidate_reference=values,
            conflicts=conflicts,
        )

    @staticmethod
    def recommend(field_name: str, existing_value: Any, new_value: Any) -> Recommendation:
        if field_name in FILL_GAP_FIELDS:
            if _is_empty(existing_value):
                return Recommendation.USE_NEW
            return Recommendation.MANUAL_REVIEW
        if field_name in LONGER_WINS_FIELDS:
            if len(new_value) > len(existing_value or ()):
                return Recommendation.USE_NEW
            return Recommendation.KEEP_EXISTING
        return Recommendation.MANUAL_REVIEW

    def apply_resolution(
        self,
        resolution: ConflictResolution,
        policy: ResolutionPolicy | str = ResolutionPolicy.MERGE,
        overrides: Optional[Overrides] = None,
    ) -> Dict[str, Any]:
        """Build the update patch for ``resolution`` under ``policy``.

        ``merge`` applies ``use-new`` and ``merge`` recommendations, ``use-new``
        takes every candidate value and ``keep-existing`` takes none. Entries in
        ``overrides`` replace the recommendation for their field under every
        policy, which is how a caller settles ``manual-review`` fields.
        """

        policy = ResolutionPolicy(policy)
        chosen = {name: Recommendation(value) for name, value in (overrides or {}).items()}

        patch: Dict[str, Any] = {}
        for conflict in resolution.conflicts:
            decision = chosen.get(conflict.field) or self._policy_decision(policy, conflict)
            if decision is Recommendation.USE_NEW:
                patch[conflict.field] = conflict.new_value
            elif decision is Recommendation.MERGE:
                patch[conflict.field] = self._merged_value(conflict)

        logger.info(
            "Resolved reference conflicts",
            extra={
                "reference_id": resolution.existing_reference.id,
                "policy": policy.value,
                "conflicts": len(resolution.conflicts),
                "patched_fields": sorted(patch),
            },
        )
        return patch

    @staticmethod
    def _policy_decision(policy: ResolutionPolicy, conflict: FieldConflict) -> Recommendation:
        if policy is ResolutionPolicy.USE_NEW:
            return Recommendation.USE_NEW
        if policy is ResolutionPolicy.KEEP_EXISTING:
            return Recommendation.KEEP_EXISTING
        return conflict.recommendation

    @staticmethod
    def _merged_value(conflict: FieldConflict) -> Any:
        if isinstance(conflict.new_value, (list, tuple)):
            return merge_authors([conflict.existing_value or [], conflict.new_value])
        return conflict.new_value
