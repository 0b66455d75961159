"""
Unit tests for the detector module.

Tests engine queries with a mocked engine client.
"""

import unittest
from unittest.mock import patch, MagicMock
from datetime import datetime, timezone

from docker.errors import APIError, DockerException

from dockersweep.detector import (
    ContainerInfo,
    ImageRecord,
    create_client,
    split_reference,
    normalize_repository,
    get_stopped_containers,
    get_repository_images,
    get_dangling_images,
    get_unused_networks,
    get_unused_volumes,
    get_build_cache,
    get_engine_disk_usage,
)


def mock_container(name, container_id, image="nginx:latest", exit_code=0):
    container = MagicMock()
    container.id = container_id
    container.name = name
    container.status = "exited"
    container.attrs = {
        "Config": {"Image": image},
        "State": {"Status": "exited", "ExitCode": exit_code},
    }
    return container


def mock_image(image_id, tags, created, size=1000):
    image = MagicMock()
    image.id = image_id
    image.tags = tags
    image.attrs = {"Created": created, "Size": size}
    return image


def mock_named(name, object_id, **attrs):
    obj = MagicMock()
    obj.id = object_id
    obj.name = name
    obj.attrs = attrs
    return obj


class TestCreateClient(unittest.TestCase):
    """Test engine connection."""
    
    @patch('dockersweep.detector.docker.from_env')
    def test_create_client_success(self, mock_from_env):
        """Test that the client is created and pinged."""
        client = MagicMock()
        mock_from_env.return_value = client
        
        result = create_client()
        
        self.assertIs(result, client)
        client.ping.assert_called_once()
    
    @patch('dockersweep.detector.docker.from_env')
    def test_create_client_unreachable(self, mock_from_env):
        """Test error when the engine cannot be reached."""
        mock_from_env.side_effect = DockerException("Error while fetching server API version")
        
        with self.assertRaises(RuntimeError) as ctx:
            create_client()
        
        self.assertIn("Unable to connect", str(ctx.exception))


class TestStoppedContainers(unittest.TestCase):
    """Test stopped container detection."""
    
    def test_lists_exited_containers(self):
        """Test that exited containers are returned with their details."""
        client = MagicMock()
        client.containers.list.return_value = [
            mock_container("web", "c1"),
            mock_container("job", "c2", image="alpine:3", exit_code=1),
        ]
        
        result = get_stopped_containers(client)
        
        client.containers.list.assert_called_once_with(all=True, filters={"status": "exited"})
        self.assertEqual(result[0], ContainerInfo("c1", "web", "nginx:latest", "exited (0)"))
        self.assertEqual(result[1].status, "exited (1)")
        self.assertEqual(result[1].describe(), "job\talpine:3\texited (1)")
    
    def test_query_failure(self):
        """Test that engine errors become RuntimeError."""
        client = MagicMock()
        client.containers.list.side_effect = APIError("server error")
        
        with self.assertRaises(RuntimeError) as ctx:
            get_stopped_containers(client)
        
        self.assertIn("Failed to list stopped containers", str(ctx.exception))


class TestSplitReference(unittest.TestCase):
    """Test image reference parsing."""
    
    def test_simple_reference(self):
        self.assertEqual(split_reference("app:1.0"), ("app", "1.0"))
    
    def test_registry_with_port(self):
        self.assertEqual(
            split_reference("registry.example.com:5000/team/app:2.1"),
            ("registry.example.com:5000/team/app", "2.1"),
        )
    
    def test_registry_with_port_no_tag(self):
        self.assertEqual(
            split_reference("registry.example.com:5000/team/app"),
            ("registry.example.com:5000/team/app", "<none>"),
        )
    
    def test_no_tag(self):
        self.assertEqual(split_reference("app"), ("app", "<none>"))


class TestNormalizeRepository(unittest.TestCase):
    """Test repository name normalization."""
    
    def test_docker_hub_names(self):
        self.assertEqual(normalize_repository("app"), "docker.io/library/app")
        self.assertEqual(normalize_repository("library/app"), "docker.io/library/app")
        self.assertEqual(normalize_repository("index.docker.io/library/app"), "docker.io/library/app")
        self.assertEqual(normalize_repository("team/app"), "docker.io/team/app")
    
    def test_other_registries_unchanged(self):
        self.assertEqual(normalize_repository("registry.example.com/team/app"),
                         "registry.example.com/team/app")
        self.assertEqual(normalize_repository("localhost:5000/app"), "localhost:5000/app")
        self.assertEqual(normalize_repository("localhost/app"), "localhost/app")


class TestRepositoryImages(unittest.TestCase):
    """Test project image enumeration."""
    
    def test_one_record_per_matching_tag(self):
        """Test that each tag of the repository becomes a record."""
        client = MagicMock()
        client.images.list.return_value = [
            mock_image(
                "sha256:" + "a" * 64,
                ["registry.example.com/app:1.1", "registry.example.com/app:latest",
                 "other/app:1.1"],
                "2024-05-01T10:20:30.123456789Z",
            ),
            mock_image("sha256:" + "b" * 64, ["registry.example.com/app:1.0"],
                       "2024-04-01T08:00:00Z"),
        ]
        
        result = get_repository_images(client, "registry.example.com/app")
        
        client.images.list.assert_called_once_with(name="registry.example.com/app")
        self.assertEqual([r.tag for r in result], ["1.1", "latest", "1.0"])
        self.assertEqual(result[0].id, result[1].id)
        self.assertEqual(
            result[0].created_at,
            datetime(2024, 5, 1, 10, 20, 30, 123456, tzinfo=timezone.utc),
        )
        self.assertEqual(result[0].short_id, "a" * 12)
    
    def test_untagged_images_excluded(self):
        """Test that images without a tag in the repository are skipped."""
        client = MagicMock()
        client.images.list.return_value = [
            mock_image("sha256:c", [], "2024-05-01T00:00:00Z"),
        ]
        
        self.assertEqual(get_repository_images(client, "app"), [])
    
    def test_epoch_creation_time(self):
        """Test that epoch-seconds creation times are accepted."""
        client = MagicMock()
        client.images.list.return_value = [mock_image("sha256:d", ["app:1"], 1714557630)]
        
        result = get_repository_images(client, "app")
        
        self.assertEqual(result[0].created_at.year, 2024)
    
    def test_unreadable_timestamp(self):
        """Test that an unparseable timestamp is reported as a query failure."""
        client = MagicMock()
        client.images.list.return_value = [mock_image("sha256:e", ["app:1"], "yesterday")]
        
        with self.assertRaises(RuntimeError):
            get_repository_images(client, "app")
    
    def test_query_failure(self):
        """Test that engine errors become RuntimeError."""
        client = MagicMock()
        client.images.list.side_effect = ConnectionError("refused")
        
        with self.assertRaises(RuntimeError) as ctx:
            get_repository_images(client, "app")
        
        self.assertIn("Failed to list images for app", str(ctx.exception))
    
    def test_qualified_name_matches_short_listing(self):
        """Test that a fully qualified Docker Hub name finds short-named images."""
        client = MagicMock()
        client.images.list.return_value = [
            mock_image("sha256:f", ["app:1.0", "app:1.1"], "2024-05-01T00:00:00Z"),
        ]
        
        result = get_repository_images(client, "docker.io/library/app")
        
        self.assertEqual([r.tag for r in result], ["1.0", "1.1"])
        self.assertEqual(result[0].repository, "app")
    
    def test_other_registry_not_matched(self):
        """Test that the same name on another registry is not matched."""
        client = MagicMock()
        client.images.list.return_value = [
            mock_image("sha256:g", ["registry.example.com/app:1.0"], "2024-05-01T00:00:00Z"),
        ]
        
        self.assertEqual(get_repository_images(client, "app"), [])


class TestOtherResources(unittest.TestCase):
    """Test dangling image, network, volume and cache detection."""
    
    def test_dangling_images(self):
        """Test dangling image query."""
        client = MagicMock()
        client.images.list.return_value = [
            mock_image("sha256:" + "f" * 64, [], "2024-05-01T00:00:00Z", size=1500),
        ]
        
        result = get_dangling_images(client)
        
        client.images.list.assert_called_once_with(filters={"dangling": True})
        self.assertEqual(result, [ImageRecord(tag="<none>", id="sha256:" + "f" * 64, size=1500)])
        self.assertEqual(result[0].describe(), "<none>\t<none>\t" + "f" * 12 + "\t1.5kB")
    
    def test_unused_networks(self):
        """Test unused network query."""
        client = MagicMock()
        client.networks.list.return_value = [
            mock_named("ci_default", "n1", Driver="bridge", Scope="local"),
        ]
        
        result = get_unused_networks(client)
        
        client.networks.list.assert_called_once_with(filters={"dangling": True})
        self.assertEqual(result[0].describe(), "ci_default\tbridge\tlocal")
    
    def test_unused_volumes(self):
        """Test unused volume query."""
        client = MagicMock()
        client.volumes.list.return_value = [
            mock_named("cache", "cache", Driver="local",
                       Mountpoint="/var/lib/docker/volumes/cache/_data"),
        ]
        
        result = get_unused_volumes(client)
        
        client.volumes.list.assert_called_once_with(filters={"dangling": True})
        self.assertEqual(result[0].name, "cache")
        self.assertEqual(result[0].mountpoint, "/var/lib/docker/volumes/cache/_data")
    
    def test_volume_query_failure(self):
        """Test that engine errors become RuntimeError."""
        client = MagicMock()
        client.volumes.list.side_effect = APIError("boom")
        
        with self.assertRaises(RuntimeError):
            get_unused_volumes(client)
    
    def test_build_cache_excludes_in_use(self):
        """Test that in-use build cache records are not reported."""
        client = MagicMock()
        client.df.return_value = {
            "BuildCache": [
                {"ID": "abc123", "Type": "regular", "Size": 100, "InUse": False},
                {"ID": "def456", "Type": "regular", "Size": 200, "InUse": True},
            ]
        }
        
        result = get_build_cache(client)
        
        self.assertEqual([entry.id for entry in result], ["abc123"])
    
    def test_build_cache_missing(self):
        """Test engines that report no build cache."""
        client = MagicMock()
        client.df.return_value = {"BuildCache": None}
        
        self.assertEqual(get_build_cache(client), [])


class TestEngineDiskUsage(unittest.TestCase):
    """Test disk usage summary."""
    
    def test_rows(self):
        """Test that usage is summarised per resource type."""
        client = MagicMock()
        client.df.return_value = {
            "LayersSize": 5000,
            "Images": [
                {"Containers": 1, "Size": 3000, "SharedSize": 0},
                {"Containers": 0, "Size": 2000, "SharedSize": 500},
            ],
            "Containers": [
                {"State": "running", "SizeRw": 10},
                {"State": "exited", "SizeRw": 40},
            ],
            "Volumes": [
                {"UsageData": {"Size": 100, "RefCount": 1}},
                {"UsageData": {"Size": 300, "RefCount": 0}},
                {"UsageData": {"Size": -1, "RefCount": 0}},
            ],
            "BuildCache": [
                {"Size": 70, "InUse": False, "Shared": False},
                {"Size": 30, "InUse": True, "Shared": False},
            ],
        }
        
        images, containers, volumes, cache = get_engine_disk_usage(client)
        
        self.assertEqual((images.total, images.active, images.size, images.reclaimable),
                         (2, 1, 5000, 1500))
        self.assertEqual((containers.total, containers.active, containers.reclaimable),
                         (2, 1, 40))
        self.assertEqual((volumes.total, volumes.active, volumes.size, volumes.reclaimable),
                         (3, 1, 400, 300))
        self.assertEqual((cache.total, cache.active, cache.size, cache.reclaimable),
                         (2, 1, 100, 70))
        self.assertTrue(images.describe().startswith("Images"))
    
    def test_failure(self):
        """Test that a failed df call becomes RuntimeError."""
        client = MagicMock()
        client.df.side_effect = APIError("unavailable")
        
        with self.assertRaises(RuntimeError) as ctx:
            get_engine_disk_usage(client)
        
        self.assertIn("disk usage", str(ctx.exception))


if __name__ == '__main__':
    unittest.main()
