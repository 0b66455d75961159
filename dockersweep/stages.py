"""
Cleanup stages.

Each cleanup stage is described by a Stage: a read-only query, a mutating
action and the labels used in the log. run_stage() drives the shared
inspect-then-act flow; image retention and the disk usage snapshots have
their own runners.
"""

from dataclasses import dataclass
from functools import partial
from typing import Callable, List, Optional

from .analyzer import plan_image_retention, get_protected_image_ids
from .config import CleanupConfig, ExecutionMode, RetentionPolicy
from .detector import (
    get_stopped_containers,
    get_repository_images,
    get_dangling_images,
    get_unused_networks,
    get_unused_volumes,
    get_build_cache,
    get_engine_disk_usage,
)
from .remover import (
    RemovalOutcome,
    RemovalStatus,
    remove_containers,
    remove_images,
    prune_networks,
    prune_volumes,
    prune_build_cache,
    prune_system,
)
from .utils import get_host_disk_usage


DISK_USAGE_HEADER = f"{'TYPE':<16}{'TOTAL':<8}{'ACTIVE':<8}{'SIZE':<12}RECLAIMABLE"


@dataclass
class StageResult:
    """
    Outcome of one cleanup stage, used for the summary report.

    Attributes:
        label: Resource label (e.g. 'stopped containers')
        found: Number of resources found
        removed: Number removed (Live mode)
        failed: Number of failed removals or prune calls
        skipped_items: Number of items deliberately not removed
        dry_run: Stage ran in Dry mode
        skipped: Stage was skipped entirely
        query_failed: The engine query failed
        actions: Number of mutating calls attempted, for stages without a query
        reclaimed: Bytes reclaimed as reported by the engine
        note: Extra detail shown in the summary
    """
    label: str
    found: int = 0
    removed: int = 0
    failed: int = 0
    skipped_items: int = 0
    dry_run: bool = False
    skipped: bool = False
    query_failed: bool = False
    actions: int = 0
    reclaimed: int = 0
    note: str = ""

    @property
    def mark(self) -> str:
        if self.skipped:
            return "➖"
        if self.failed or self.query_failed:
            return "⚠️"
        return "✅"

    def describe(self) -> str:
        title = self.label[:1].upper() + self.label[1:]
        if self.note:
            title = f"{title} ({self.note})"

        if self.skipped:
            return f"{title}: skipped"
        if self.query_failed:
            return f"{title}: unable to retrieve"
        if self.actions and not self.found:
            if self.dry_run:
                return f"{title}: would run"
            if self.failed:
                return f"{title}: {self.failed} of {self.actions} steps failed"
            return f"{title}: performed"
        if not self.found:
            return f"{title}: nothing to remove"
        if self.dry_run:
            return f"{title}: {self.found} would be removed"

        text = f"{title}: {self.removed} removed"
        if self.failed:
            text += f", {self.failed} failed"
        if self.skipped_items:
            text += f", {self.skipped_items} skipped"
        return text


@dataclass
class Stage:
    """
    Descriptor for one cleanup stage.

    Attributes:
        title: Section banner text
        label: Plural resource label used in log lines
        query: Returns the resources found, raises RuntimeError on failure;
            None for stages that always act
        mutate: Receives the found resources and performs the removal
        per_item: mutate reports one outcome per resource rather than one
            outcome per prune call
        note: Extra line logged once resources are found
        dry_run_message: Logged in Dry mode by stages without a query
        live_message: Logged before acting by stages without a query
        runner: Replaces run_stage for stages with their own flow
    """
    title: str
    label: str
    query: Optional[Callable[[], list]] = None
    mutate: Optional[Callable[[list], List[RemovalOutcome]]] = None
    per_item: bool = True
    note: str = ""
    dry_run_message: str = ""
    live_message: str = ""
    runner: Optional[Callable] = None

    def execute(self, mode: ExecutionMode, reporter) -> StageResult:
        reporter.section(self.title)
        if self.runner is not None:
            return self.runner(mode, reporter)
        return run_stage(self, mode, reporter)


def report_outcomes(outcomes: List[RemovalOutcome], reporter, result: StageResult) -> None:
    """
    Log each removal outcome and tally it into result.

    Failures are logged as warnings; they never abort the stage.
    """
    for outcome in outcomes:
        result.reclaimed += outcome.reclaimed
        if outcome.status == RemovalStatus.SUCCESS:
            result.removed += 1
            reporter.log(f"Success: {outcome.action}")
        elif outcome.status == RemovalStatus.SKIPPED:
            result.skipped_items += 1
            reporter.log(f"Skipped: {outcome.action} ({outcome.error})")
        else:
            result.failed += 1
            reporter.warning(f"Warning: Failed to {outcome.action}: {outcome.error}")


def run_stage(stage: Stage, mode: ExecutionMode, reporter) -> StageResult:
    """
    Run the inspect-then-act flow for one stage.

    Queries the engine, logs what was found, then either lists what would
    be removed (Dry mode) or performs the removal (Live mode). A failed
    query is treated as nothing found.

    Args:
        stage: Stage descriptor
        mode: Execution mode
        reporter: Reporter for output

    Returns:
        StageResult: What was found and done
    """
    dry = mode == ExecutionMode.DRY
    result = StageResult(label=stage.label, dry_run=dry)

    if stage.query is None:
        if dry:
            reporter.log(f"[DRY RUN] {stage.dry_run_message}")
            result.actions = 1
            return result
        reporter.log(stage.live_message)
        outcomes = stage.mutate([])
        result.actions = len(outcomes)
        report_outcomes(outcomes, reporter, result)
        return result

    try:
        found = stage.query()
    except RuntimeError as e:
        reporter.warning(f"Unable to retrieve {stage.label}: {e}")
        found = []
        result.query_failed = True

    if not found:
        reporter.log(f"No {stage.label} found")
        return result

    result.found = len(found)
    reporter.log(f"Found {len(found)} {stage.label}")
    if stage.note:
        reporter.log(stage.note)

    if dry:
        reporter.log(f"[DRY RUN] Would remove {stage.label}:")
        for item in found:
            reporter.log(f"  {item.describe()}")
        return result

    reporter.log(f"Removing {stage.label}...")
    outcomes = stage.mutate(found)
    report_outcomes(outcomes, reporter, result)

    if not stage.per_item:
        # one prune call covers every resource found
        result.removed = 0 if result.failed else len(found)

    return result


def run_retention_stage(client, policy: RetentionPolicy, mode: ExecutionMode, reporter) -> StageResult:
    """
    Keep the newest images of the target repository and remove the rest.

    Args:
        client: Engine client
        policy: Retention policy
        mode: Execution mode
        reporter: Reporter for output

    Returns:
        StageResult: What was found and done
    """
    dry = mode == ExecutionMode.DRY
    result = StageResult(
        label="old images",
        dry_run=dry,
        note=f"keeping {policy.keep_count}",
    )

    if not policy.enabled:
        reporter.log("Target image repository not set, skipping old image cleanup")
        result.skipped = True
        return result

    repository = policy.target_repository
    reporter.log(f"Keeping {policy.keep_count} most recent images for {repository}")

    try:
        records = get_repository_images(client, repository)
    except RuntimeError as e:
        reporter.warning(f"Unable to retrieve images for {repository}: {e}")
        records = []
        result.query_failed = True

    if not records:
        reporter.log(f"No images found for {repository}")
        return result

    result.found = len(records)
    reporter.log(f"Found {len(records)} images for {repository}")

    if len(records) <= policy.keep_count:
        reporter.log(
            f"Only {len(records)} images found, keeping all (threshold: {policy.keep_count})"
        )
        result.found = 0
        return result

    plan = plan_image_retention(records, repository, policy.keep_count)
    result.found = len(plan.candidates)

    for record in plan.kept:
        reporter.debug(f"Keeping {record.describe()}")

    reporter.log(f"Will remove {len(plan.candidates)} old images")

    if dry:
        reporter.log("[DRY RUN] Would remove these images:")
        for record in plan.candidates:
            reporter.log(f"  {record.describe()}")
        return result

    outcomes = remove_images(client, plan.candidates, get_protected_image_ids(plan))
    report_outcomes(outcomes, reporter, result)
    return result


def run_disk_usage_stage(client, reporter, after: bool = False) -> None:
    """
    Log host filesystem usage and engine disk usage.

    Either report failing is logged and does not stop the run.

    Args:
        client: Engine client
        reporter: Reporter for output
        after: Snapshot taken after cleanup (changes the wording only)
    """
    reporter.section("DISK SPACE - AFTER CLEANUP" if after else "DISK SPACE - BEFORE CLEANUP")

    reporter.log("Disk usage after cleanup:" if after else "Current disk usage:")
    try:
        for line in get_host_disk_usage("/"):
            reporter.log(line)
    except RuntimeError as e:
        reporter.warning(f"Unable to get host disk usage: {e}")

    reporter.log(
        "Docker system disk usage after cleanup:" if after else "Docker system disk usage:"
    )
    try:
        rows = get_engine_disk_usage(client)
    except RuntimeError as e:
        reporter.debug(str(e))
        reporter.log("Unable to get Docker disk usage")
        return

    reporter.log(DISK_USAGE_HEADER)
    for row in rows:
        reporter.log(row.describe())


def build_stages(client, config: CleanupConfig) -> List[Stage]:
    """
    Build the ordered list of cleanup stages for a run.

    Args:
        client: Engine client
        config: Run configuration

    Returns:
        List[Stage]: Stages in execution order
    """
    return [
        Stage(
            title="STOPPED CONTAINERS CLEANUP",
            label="stopped containers",
            query=partial(get_stopped_containers, client),
            mutate=partial(remove_containers, client),
        ),
        Stage(
            title="OLD IMAGES CLEANUP",
            label="old images",
            runner=partial(run_retention_stage, client, config.retention_policy),
        ),
        Stage(
            title="DANGLING IMAGES CLEANUP",
            label="dangling images",
            query=partial(get_dangling_images, client),
            mutate=partial(remove_images, client),
        ),
        Stage(
            title="UNUSED NETWORKS CLEANUP",
            label="unused networks",
            query=partial(get_unused_networks, client),
            mutate=lambda found: prune_networks(client),
            per_item=False,
        ),
        Stage(
            title="UNUSED VOLUMES CLEANUP",
            label="unused volumes",
            query=partial(get_unused_volumes, client),
            mutate=lambda found: prune_volumes(client),
            per_item=False,
            note="Volume cleanup is conservative - only removing clearly unused volumes",
        ),
        Stage(
            title="BUILD CACHE CLEANUP",
            label="build cache entries",
            query=partial(get_build_cache, client),
            mutate=lambda found: prune_build_cache(client),
            per_item=False,
        ),
        Stage(
            title="SYSTEM CLEANUP",
            label="system prune",
            mutate=lambda found: prune_system(client),
            per_item=False,
            dry_run_message="Would run system prune (containers, dangling images, networks, build cache)",
            live_message="Running system-wide cleanup (keeping volumes)...",
        ),
    ]
