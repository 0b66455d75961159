"""
Image retention analysis module.

Provides functionality to order a repository's images by age and decide
which ones are kept and which ones are safe to remove.
"""

from typing import List, Set, Tuple
from dataclasses import dataclass

from .detector import ImageRecord


@dataclass
class RetentionPlan:
    """
    Result of retention analysis.

    Attributes:
        repository: Repository the plan applies to
        keep_count: Number of most recent images requested to keep
        kept: Records retained, newest first
        candidates: Records to remove, newest first
    """
    repository: str
    keep_count: int
    kept: List[ImageRecord]
    candidates: List[ImageRecord]

    @property
    def total(self) -> int:
        return len(self.kept) + len(self.candidates)


def sort_newest_first(records: List[ImageRecord]) -> List[ImageRecord]:
    """
    Order image records by creation time, newest first.

    Records sharing a timestamp keep the order the engine listed them in;
    no secondary key is applied.

    Args:
        records: Records in engine listing order

    Returns:
        List[ImageRecord]: New list, newest first
    """
    # sorted() is stable, including with reverse=True
    return sorted(records, key=lambda record: record.created_at, reverse=True)


def plan_image_retention(records: List[ImageRecord], repository: str, keep_count: int) -> RetentionPlan:
    """
    Split a repository's images into kept and removable records.

    The keep_count newest records are kept; every record after them in
    the newest-first ordering becomes a removal candidate.

    Args:
        records: Image records for the repository, in engine order
        repository: Repository name
        keep_count: Number of records to keep (at least 1)

    Returns:
        RetentionPlan: Kept records and removal candidates

    Raises:
        ValueError: If keep_count is below 1 or the plan fails validation
    """
    if keep_count < 1:
        raise ValueError(f"keep_count must be at least 1, got {keep_count}")

    ordered = sort_newest_first(records)

    plan = RetentionPlan(
        repository=repository,
        keep_count=keep_count,
        kept=ordered[:keep_count],
        candidates=ordered[keep_count:],
    )

    is_safe, error_msg = validate_retention_plan(plan)
    if not is_safe:
        raise ValueError(error_msg)

    return plan


def validate_retention_plan(plan: RetentionPlan) -> Tuple[bool, str]:
    """
    Validate that a retention plan never removes a newer image than it keeps.

    Performs safety checks to ensure:
    - Nothing is removed while fewer than keep_count records are kept
    - No removal candidate is newer than the oldest kept record

    Args:
        plan: Plan to validate

    Returns:
        Tuple[bool, str]: (is_safe, error_message)
    """
    if plan.candidates and len(plan.kept) < plan.keep_count:
        return False, (
            f"Safety check failed: only {len(plan.kept)} of {plan.keep_count} "
            f"images kept for {plan.repository} while removing {len(plan.candidates)}"
        )

    if plan.kept and plan.candidates:
        oldest_kept = plan.kept[-1].created_at
        for record in plan.candidates:
            if record.created_at > oldest_kept:
                return False, (
                    f"Safety check failed: image {record.tag} ({record.short_id}) "
                    f"is newer than a kept image"
                )

    return True, ""


def get_protected_image_ids(plan: RetentionPlan) -> Set[str]:
    """
    Get the image ids that must never be removed for this plan.

    An image tagged more than once can appear both among the kept records
    and among the candidates; its id is protected by the kept tag.

    Args:
        plan: Retention plan

    Returns:
        Set[str]: Protected image ids
    """
    return {record.id for record in plan.kept}
