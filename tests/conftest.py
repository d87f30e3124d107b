"""
Pytest configuration and fixtures for the bucket-sync test suite.

This module provides:
- An in-memory `ObjectStore` with failure injection, used by the unit tests.
- A factory for `SyncConfig` objects isolated to a temporary directory.
- Docker fixtures spinning up source and destination MinIO services for
  the end-to-end tests.
"""

import asyncio
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List, Optional, Set, Tuple

import pytest
import requests
from requests.exceptions import ConnectionError

from bucket_sync.config import EndpointConfig, SyncConfig
from bucket_sync.store import ObjectRecord

# --- Constants ---
S3_ACCESS_KEY: str = "minio-key"
S3_SECRET_KEY: str = "minio-secret"
S3_REGION: str = "us-east-1"


class InMemoryObjectStore:
    """
    A dict-backed `ObjectStore` that records calls and can inject failures.

    Listing is marker-based and lexicographic: a page holds the keys strictly
    after the cursor, and the next cursor is the last key of a full page.

    Attributes:
        objects (Dict[str, bytes]): The bucket content.
        list_calls (List[Tuple[str, str, int]]): (prefix, cursor, page_size)
            of every listing call.
        get_calls (List[str]): Keys of every read, in call order.
        put_calls (List[str]): Keys of every write, in call order.
        fail_get (Dict[str, int]): Remaining read failures per key.
        fail_put (Dict[str, int]): Remaining write failures per key.
        fail_list_cursors (Set[str]): Cursors whose listing call fails.
        delay_s (float): Sleep inside each read, to force interleaving.
        max_active_gets (int): Highest number of concurrent reads observed.
    """

    def __init__(self, objects: Optional[Dict[str, bytes]] = None) -> None:
        self.objects: Dict[str, bytes] = dict(objects or {})
        self.list_calls: List[Tuple[str, str, int]] = []
        self.get_calls: List[str] = []
        self.put_calls: List[str] = []
        self.fail_get: Dict[str, int] = {}
        self.fail_put: Dict[str, int] = {}
        self.fail_list_cursors: Set[str] = set()
        self.delay_s: float = 0.0
        self.max_active_gets: int = 0
        self._active_gets: int = 0

    @staticmethod
    def _maybe_fail(table: Dict[str, int], key: str, operation: str) -> None:
        if table.get(key, 0) > 0:
            table[key] -= 1
            raise OSError(f"injected {operation} failure for '{key}'")

    async def list_objects(
        self, prefix: str, cursor: str, page_size: int
    ) -> Tuple[List[ObjectRecord], str]:
        self.list_calls.append((prefix, cursor, page_size))
        if cursor in self.fail_list_cursors:
            raise OSError(f"injected listing failure after '{cursor}'")
        keys: List[str] = sorted(
            k for k in self.objects if k.startswith(prefix) and k > cursor
        )
        page: List[str] = keys[:page_size]
        next_cursor: str = page[-1] if len(keys) > page_size else ""
        return [ObjectRecord(k, len(self.objects[k])) for k in page], next_cursor

    async def get_object(self, key: str) -> bytes:
        self.get_calls.append(key)
        self._active_gets += 1
        self.max_active_gets = max(self.max_active_gets, self._active_gets)
        try:
            await asyncio.sleep(self.delay_s)
            self._maybe_fail(self.fail_get, key, "get")
            return self.objects[key]
        finally:
            self._active_gets -= 1

    async def put_object(self, key: str, data: bytes) -> None:
        self.put_calls.append(key)
        await asyncio.sleep(0)
        self._maybe_fail(self.fail_put, key, "put")
        self.objects[key] = data


# --- Unit Test Fixtures ---
@pytest.fixture(scope="function")
def store_factory() -> Callable[..., InMemoryObjectStore]:
    """
    Provide a factory for in-memory object stores.

    Returns:
        Callable[..., InMemoryObjectStore]: Builds a store from a key -> bytes
            mapping.
    """
    return InMemoryObjectStore


@pytest.fixture(scope="function")
def config_factory(tmp_path: Path) -> Callable[..., SyncConfig]:
    """
    Provide a factory for `SyncConfig` objects isolated to `tmp_path`.

    The checkpoint lives at `tmp_path / "lastMarker"`; keyword arguments
    override any other field.

    Args:
        tmp_path (Path): The pytest fixture for a temporary directory.

    Returns:
        Callable[..., SyncConfig]: The factory.
    """

    def _factory(**overrides: Any) -> SyncConfig:
        endpoint: EndpointConfig = EndpointConfig(
            endpoint_url="http://localhost:9000",
            access_key_id="key",
            secret_access_key="secret",
            bucket="bucket",
        )
        fields: Dict[str, Any] = {
            "source": endpoint,
            "destination": endpoint,
            "checkpoint_path": tmp_path / "lastMarker",
        }
        fields.update(overrides)
        return SyncConfig(**fields)

    return _factory


@pytest.fixture(scope="function")
def config_file(tmp_path: Path) -> Generator[Callable[[str], Path], None, None]:
    """
    Provide a factory writing INI content to a temporary config file.

    Yields:
        Callable[[str], Path]: Writes the given text and returns its path.
    """

    def _writer(content: str) -> Path:
        path: Path = tmp_path / "config.ini"
        path.write_text(content)
        return path

    yield _writer


# --- Docker Fixtures ---
@pytest.fixture(scope="session")
def docker_compose_file(pytestconfig: pytest.Config) -> str:
    """
    Locate the docker-compose.yml file for the test suite.

    Args:
        pytestconfig (pytest.Config): The pytest configuration object.

    Returns:
        str: The absolute path to the docker-compose.yml file.
    """
    return str(Path(pytestconfig.rootdir) / "tests" / "docker-compose.yml")


@pytest.fixture(scope="session")
def docker_compose_project_name() -> str:
    """
    Define a unique, static project name for the Docker stack.

    Returns:
        str: A unique name for the docker-compose project.
    """
    return "bucket-sync-tests"


def _is_s3_responsive(url: str) -> bool:
    """
    Check if the MinIO health endpoint is responsive.

    Args:
        url (str): The base URL of the MinIO API.

    Returns:
        bool: True if the service is responsive, False otherwise.
    """
    try:
        response: requests.Response = requests.get(f"{url}/minio/health/live")
        return response.status_code == 200
    except ConnectionError:
        return False


def _minio_service(docker_ip: str, docker_services: Any, name: str) -> Dict[str, Any]:
    port: int = docker_services.port_for(name, 9000)
    api_url: str = f"http://{docker_ip}:{port}"
    docker_services.wait_until_responsive(
        timeout=30.0, pause=0.1, check=lambda: _is_s3_responsive(api_url)
    )
    return {
        "endpoint_url": api_url,
        "aws_access_key_id": S3_ACCESS_KEY,
        "aws_secret_access_key": S3_SECRET_KEY,
        "region_name": S3_REGION,
    }


@pytest.fixture(scope="session")
def source_s3_service(docker_ip: str, docker_services: Any) -> Dict[str, Any]:
    """
    Ensure the source S3 service is running and return its connection details.

    Args:
        docker_ip (str): The IP address of the Docker host, from pytest-docker.
        docker_services (Any): The pytest-docker services fixture.

    Returns:
        Dict[str, Any]: Connection details for the source S3 service.
    """
    return _minio_service(docker_ip, docker_services, "minio-source")


@pytest.fixture(scope="session")
def dest_s3_service(docker_ip: str, docker_services: Any) -> Dict[str, Any]:
    """
    Ensure the destination S3 service is running and return its connection details.

    Args:
        docker_ip (str): The IP address of the Docker host, from pytest-docker.
        docker_services (Any): The pytest-docker services fixture.

    Returns:
        Dict[str, Any]: Connection details for the destination S3 service.
    """
    return _minio_service(docker_ip, docker_services, "minio-destination")


@pytest.fixture(scope="function")
def bucket_names() -> Dict[str, str]:
    """
    Generate unique source and destination bucket names for one test.

    Returns:
        Dict[str, str]: The names under the keys "source" and "destination".
    """
    suffix: str = f"test-bucket-{uuid.uuid4()}"
    return {"source": f"source-{suffix}", "destination": f"dest-{suffix}"}
