"""
Resource removal module.

Provides functionality to remove containers and images and to prune
networks, volumes and build cache through the container engine. Engine
errors are reported per item as RemovalOutcome records and never raised.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional

from .detector import ContainerInfo, ImageRecord, ENGINE_ERRORS


class RemovalStatus(Enum):
    """Status of a removal operation."""
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class RemovalOutcome:
    """
    Result of one mutating engine call.

    Attributes:
        action: Human-readable description (e.g. 'remove image 1.2 (1a2b3c4d5e6f)')
        status: Outcome status
        error: Failure or skip reason
        reclaimed: Bytes reclaimed as reported by the engine
    """
    action: str
    status: RemovalStatus
    error: str = ""
    reclaimed: int = 0

    @property
    def ok(self) -> bool:
        return self.status == RemovalStatus.SUCCESS


def _attempt(action: str, call) -> RemovalOutcome:
    try:
        report = call()
    except ENGINE_ERRORS as e:
        return RemovalOutcome(action, RemovalStatus.FAILED, error=str(e))

    reclaimed = 0
    if isinstance(report, dict):
        reclaimed = report.get("SpaceReclaimed") or 0
    return RemovalOutcome(action, RemovalStatus.SUCCESS, reclaimed=reclaimed)


def remove_containers(client, containers: Iterable[ContainerInfo]) -> List[RemovalOutcome]:
    """
    Remove containers one at a time.

    Args:
        client: Engine client
        containers: Containers to remove

    Returns:
        List[RemovalOutcome]: One outcome per container, in input order
    """
    return [
        _attempt(
            f"remove container {container.name}",
            lambda container=container: client.api.remove_container(container.id),
        )
        for container in containers
    ]


def remove_image(client, record: ImageRecord) -> RemovalOutcome:
    """
    Remove a single image by id (without force).

    Args:
        client: Engine client
        record: Image to remove

    Returns:
        RemovalOutcome: Outcome of the removal
    """
    if record.tag == "<none>":
        action = f"remove dangling image {record.short_id}"
    else:
        action = f"remove image {record.tag} ({record.short_id})"
    return _attempt(action, lambda: client.images.remove(record.id))


def remove_images(
    client,
    records: Iterable[ImageRecord],
    protected_ids: Optional[Iterable[str]] = None,
) -> List[RemovalOutcome]:
    """
    Remove images one at a time by id.

    A record whose id is protected, or whose id was already handled
    earlier in the same call, is skipped instead of removed. A failure on
    one image does not stop the others.

    Args:
        client: Engine client
        records: Images to remove, in removal order
        protected_ids: Image ids that must not be removed

    Returns:
        List[RemovalOutcome]: One outcome per record, in input order
    """
    protected = set(protected_ids or ())
    handled = set()
    outcomes = []

    for record in records:
        if record.id in protected:
            outcomes.append(RemovalOutcome(
                f"remove image {record.tag} ({record.short_id})",
                RemovalStatus.SKIPPED,
                error="image id is shared with a kept tag",
            ))
            continue

        if record.id in handled:
            outcomes.append(RemovalOutcome(
                f"remove image {record.tag} ({record.short_id})",
                RemovalStatus.SKIPPED,
                error="image id already handled",
            ))
            continue

        handled.add(record.id)
        outcomes.append(remove_image(client, record))

    return outcomes


def prune_networks(client) -> List[RemovalOutcome]:
    """Prune all networks with no attached containers."""
    return [_attempt("remove unused networks", client.networks.prune)]


def prune_volumes(client) -> List[RemovalOutcome]:
    """Prune all volumes not referenced by any container."""
    return [_attempt("remove unused volumes", client.volumes.prune)]


def prune_build_cache(client) -> List[RemovalOutcome]:
    """Prune build cache not in use."""
    return [_attempt("clean build cache", client.api.prune_builds)]


def prune_system(client) -> List[RemovalOutcome]:
    """
    Prune stopped containers, dangling images, unused networks and build cache.

    Volumes are never touched. Each part runs even if an earlier one fails.

    Args:
        client: Engine client

    Returns:
        List[RemovalOutcome]: One outcome per pruned resource type
    """
    return [
        _attempt("prune stopped containers", client.containers.prune),
        _attempt("prune dangling images",
                 lambda: client.images.prune(filters={"dangling": True})),
        _attempt("prune unused networks", client.networks.prune),
        _attempt("prune build cache", client.api.prune_builds),
    ]
