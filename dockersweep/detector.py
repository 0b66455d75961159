"""
Resource detection module.

Provides read-only queries against the container engine: stopped
containers, project images, dangling images, unused networks and volumes,
build cache, and aggregate disk usage.
"""

from datetime import datetime
from typing import List, Optional
from dataclasses import dataclass

import docker
from docker.errors import DockerException

from .utils import format_size, parse_engine_timestamp


NONE_TAG = "<none>"

DEFAULT_REGISTRY = "docker.io"
LEGACY_REGISTRY = "index.docker.io"

# Errors the engine client can raise; requests' exceptions derive from OSError
ENGINE_ERRORS = (DockerException, OSError)


@dataclass
class ContainerInfo:
    """
    A stopped container.

    Attributes:
        id: Full container id
        name: Container name
        image: Image reference the container was created from
        status: Engine status string (e.g. 'exited (0)')
    """
    id: str
    name: str
    image: str
    status: str

    def describe(self) -> str:
        return f"{self.name}\t{self.image}\t{self.status}"


@dataclass
class ImageRecord:
    """
    One tagged (or dangling) image reference.

    An image carrying several tags yields one record per tag.

    Attributes:
        tag: Tag part of the reference ('<none>' for dangling images)
        id: Full image id (e.g. 'sha256:1a2b...')
        created_at: Creation time reported by the engine
        repository: Repository part of the reference
        size: Image size in bytes
    """
    tag: str
    id: str
    created_at: Optional[datetime] = None
    repository: str = NONE_TAG
    size: int = 0

    @property
    def short_id(self) -> str:
        return self.id.replace("sha256:", "")[:12]

    def describe(self) -> str:
        created = self.created_at.isoformat() if self.created_at else "-"
        if self.repository == NONE_TAG:
            return f"{self.repository}\t{self.tag}\t{self.short_id}\t{format_size(self.size)}"
        return f"{self.tag} {self.short_id} {created}"


@dataclass
class NetworkInfo:
    """An engine network with no attached containers."""
    id: str
    name: str
    driver: str
    scope: str

    def describe(self) -> str:
        return f"{self.name}\t{self.driver}\t{self.scope}"


@dataclass
class VolumeInfo:
    """A volume not referenced by any container."""
    name: str
    driver: str
    mountpoint: str

    def describe(self) -> str:
        return f"{self.name}\t{self.driver}\t{self.mountpoint}"


@dataclass
class BuildCacheEntry:
    """A reclaimable build cache record."""
    id: str
    type: str
    size: int
    description: str = ""

    def describe(self) -> str:
        return f"{self.id[:12]}\t{self.type}\t{format_size(self.size)}\t{self.description}"


@dataclass
class DiskUsageRow:
    """One line of the engine disk usage report."""
    type: str
    total: int
    active: int
    size: int
    reclaimable: int

    def describe(self) -> str:
        return (
            f"{self.type:<16}{self.total:<8}{self.active:<8}"
            f"{format_size(self.size):<12}{format_size(self.reclaimable)}"
        )


def create_client():
    """
    Connect to the container engine described by the environment.

    Returns:
        docker.DockerClient: Connected engine client

    Raises:
        RuntimeError: If the engine cannot be reached
    """
    try:
        client = docker.from_env()
        client.ping()
        return client
    except ENGINE_ERRORS as e:
        raise RuntimeError(f"Unable to connect to container engine: {e}")


def get_stopped_containers(client) -> List[ContainerInfo]:
    """
    Get all containers in the exited state.

    Args:
        client: Engine client

    Returns:
        List[ContainerInfo]: Stopped containers in engine order

    Raises:
        RuntimeError: If the engine query fails
    """
    try:
        containers = client.containers.list(all=True, filters={"status": "exited"})
    except ENGINE_ERRORS as e:
        raise RuntimeError(f"Failed to list stopped containers: {e}")

    stopped = []
    for container in containers:
        attrs = container.attrs or {}
        state = attrs.get("State") or {}
        status = container.status
        if isinstance(state, dict) and "ExitCode" in state:
            status = f"{status} ({state['ExitCode']})"
        stopped.append(ContainerInfo(
            id=container.id,
            name=container.name,
            image=(attrs.get("Config") or {}).get("Image", ""),
            status=status,
        ))
    return stopped


def split_reference(reference: str) -> tuple:
    """
    Split an image reference into repository and tag.

    Examples:
        'registry.example.com:5000/team/app:1.2' -> ('registry.example.com:5000/team/app', '1.2')
        'app' -> ('app', '<none>')
    """
    repository, sep, tag = reference.rpartition(":")
    if not sep or "/" in tag:
        return reference, NONE_TAG
    return repository, tag


def normalize_repository(name: str) -> str:
    """
    Expand a repository name to its fully qualified form.

    The engine lists Docker Hub images by their short name, so
    'app', 'library/app' and 'docker.io/library/app' all name the same
    repository.

    Examples:
        'app' -> 'docker.io/library/app'
        'team/app' -> 'docker.io/team/app'
        'localhost:5000/app' -> 'localhost:5000/app'
    """
    domain, sep, remainder = name.partition("/")
    if not sep or ("." not in domain and ":" not in domain and domain != "localhost"):
        domain, remainder = DEFAULT_REGISTRY, name
    elif domain == LEGACY_REGISTRY:
        domain = DEFAULT_REGISTRY

    if domain == DEFAULT_REGISTRY and "/" not in remainder:
        remainder = f"library/{remainder}"
    return f"{domain}/{remainder}"


def get_repository_images(client, repository: str) -> List[ImageRecord]:
    """
    Get every tagged image reference belonging to a repository.

    References match when their repository normalizes to the same name, so
    'docker.io/library/app' finds images listed as 'app:1.0'. Untagged and
    placeholder references are excluded. Records are returned
    in engine listing order; ordering by age is left to the analyzer.

    Args:
        client: Engine client
        repository: Repository name (e.g. 'registry.example.com/team/app')

    Returns:
        List[ImageRecord]: One record per matching tag

    Raises:
        RuntimeError: If the engine query fails or reports an unreadable timestamp
    """
    try:
        images = client.images.list(name=repository)
    except ENGINE_ERRORS as e:
        raise RuntimeError(f"Failed to list images for {repository}: {e}")

    wanted = normalize_repository(repository)
    records = []
    for image in images:
        attrs = image.attrs or {}
        try:
            created_at = parse_engine_timestamp(attrs.get("Created"))
        except ValueError as e:
            raise RuntimeError(f"Failed to read creation time of image {image.id}: {e}")

        for reference in image.tags:
            repo, tag = split_reference(reference)
            if tag == NONE_TAG or normalize_repository(repo) != wanted:
                continue
            records.append(ImageRecord(
                tag=tag,
                id=image.id,
                created_at=created_at,
                repository=repo,
                size=attrs.get("Size", 0) or 0,
            ))
    return records


def get_dangling_images(client) -> List[ImageRecord]:
    """
    Get images that are neither tagged nor referenced by a tagged image.

    Raises:
        RuntimeError: If the engine query fails
    """
    try:
        images = client.images.list(filters={"dangling": True})
    except ENGINE_ERRORS as e:
        raise RuntimeError(f"Failed to list dangling images: {e}")

    return [
        ImageRecord(
            tag=NONE_TAG,
            id=image.id,
            size=(image.attrs or {}).get("Size", 0) or 0,
        )
        for image in images
    ]


def get_unused_networks(client) -> List[NetworkInfo]:
    """
    Get user-defined networks with no attached containers.

    Raises:
        RuntimeError: If the engine query fails
    """
    try:
        networks = client.networks.list(filters={"dangling": True})
    except ENGINE_ERRORS as e:
        raise RuntimeError(f"Failed to list unused networks: {e}")

    return [
        NetworkInfo(
            id=network.id,
            name=network.name,
            driver=(network.attrs or {}).get("Driver", ""),
            scope=(network.attrs or {}).get("Scope", ""),
        )
        for network in networks
    ]


def get_unused_volumes(client) -> List[VolumeInfo]:
    """
    Get volumes not referenced by any container.

    Raises:
        RuntimeError: If the engine query fails
    """
    try:
        volumes = client.volumes.list(filters={"dangling": True})
    except ENGINE_ERRORS as e:
        raise RuntimeError(f"Failed to list unused volumes: {e}")

    return [
        VolumeInfo(
            name=volume.name,
            driver=(volume.attrs or {}).get("Driver", ""),
            mountpoint=(volume.attrs or {}).get("Mountpoint", ""),
        )
        for volume in volumes
    ]


def _disk_usage(client) -> dict:
    try:
        return client.df() or {}
    except ENGINE_ERRORS as e:
        raise RuntimeError(f"Failed to get engine disk usage: {e}")


def get_build_cache(client) -> List[BuildCacheEntry]:
    """
    Get build cache records that are not in use by a running build.

    Raises:
        RuntimeError: If the engine query fails
    """
    entries = _disk_usage(client).get("BuildCache") or []
    return [
        BuildCacheEntry(
            id=entry.get("ID", ""),
            type=entry.get("Type", ""),
            size=entry.get("Size", 0) or 0,
            description=entry.get("Description", ""),
        )
        for entry in entries
        if not entry.get("InUse")
    ]


def get_engine_disk_usage(client) -> List[DiskUsageRow]:
    """
    Summarise engine disk usage per resource type.

    Mirrors the rows of `docker system df`: images, containers, local
    volumes and build cache.

    Args:
        client: Engine client

    Returns:
        List[DiskUsageRow]: One row per resource type

    Raises:
        RuntimeError: If the engine query fails
    """
    usage = _disk_usage(client)

    images = usage.get("Images") or []
    unused_images = [img for img in images if not img.get("Containers")]
    image_row = DiskUsageRow(
        type="Images",
        total=len(images),
        active=len(images) - len(unused_images),
        size=usage.get("LayersSize", 0) or 0,
        reclaimable=sum(
            max((img.get("Size") or 0) - max(img.get("SharedSize") or 0, 0), 0)
            for img in unused_images
        ),
    )

    containers = usage.get("Containers") or []
    stopped = [c for c in containers if c.get("State") != "running"]
    container_row = DiskUsageRow(
        type="Containers",
        total=len(containers),
        active=len(containers) - len(stopped),
        size=sum(c.get("SizeRw") or 0 for c in containers),
        reclaimable=sum(c.get("SizeRw") or 0 for c in stopped),
    )

    volumes = usage.get("Volumes") or []

    def volume_size(volume):
        return max((volume.get("UsageData") or {}).get("Size", 0) or 0, 0)

    def volume_refs(volume):
        return (volume.get("UsageData") or {}).get("RefCount", 0) or 0

    volume_row = DiskUsageRow(
        type="Local Volumes",
        total=len(volumes),
        active=sum(1 for v in volumes if volume_refs(v) > 0),
        size=sum(volume_size(v) for v in volumes),
        reclaimable=sum(volume_size(v) for v in volumes if volume_refs(v) <= 0),
    )

    cache = usage.get("BuildCache") or []
    cache_row = DiskUsageRow(
        type="Build Cache",
        total=len(cache),
        active=sum(1 for entry in cache if entry.get("InUse")),
        size=sum(entry.get("Size") or 0 for entry in cache),
        reclaimable=sum(
            entry.get("Size") or 0
            for entry in cache
            if not entry.get("InUse") and not entry.get("Shared")
        ),
    )

    return [image_row, container_row, volume_row, cache_row]
