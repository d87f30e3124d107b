"""
Configuration for the bucket-sync engine.

This module reads the INI configuration file, merges its `common`, `source`
and `dest` sections into one flat option space, applies environment
overrides, and validates the result into immutable, typed dataclasses
used throughout the application.
"""

import configparser
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional

from bucket_sync.exceptions import ConfigError

COMMON_SECTION: str = "common"
SOURCE_SECTION: str = "source"
DEST_SECTION: str = "dest"

ENV_PREFIX: str = "BUCKET_SYNC_"
DEFAULT_DOWNLOAD_DIR: str = "./download"
DEFAULT_CHECKPOINT_FILE: str = "./lastMarker"
DEFAULT_REGION: str = "us-east-1"
DEFAULT_THREAD_COUNT: int = 2

_KNOWN_OPTIONS = (
    "srcEndpoint",
    "srcAccessKey",
    "srcSecretKey",
    "srcBucket",
    "srcRegion",
    "srcPrefix",
    "destEndpoint",
    "destAccessKey",
    "destSecretKey",
    "destBucket",
    "destRegion",
    "downLoadFile",
    "syncMode",
    "downloadDir",
    "maxKeys",
    "thread",
    "checkpointFile",
)
_OPTIONS_BY_UPPER: Dict[str, str] = {name.upper(): name for name in _KNOWN_OPTIONS}


def _require(options: Mapping[str, str], name: str) -> str:
    """
    Retrieves a required option from the merged configuration.

    Args:
        options (Mapping[str, str]): The merged option mapping.
        name (str): The option name.

    Returns:
        str: The option value.

    Raises:
        ConfigError: If the option is missing or blank.
    """
    value: Optional[str] = options.get(name)
    if not value:
        raise ConfigError(f"Option '{name}' must be set.")
    return value


def _parse_positive_int(raw: Optional[str]) -> Optional[int]:
    """Parse `raw` as a strictly positive integer, or return None."""
    if raw is None:
        return None
    try:
        value: int = int(raw.strip())
    except ValueError:
        return None
    return value if value > 0 else None


def _normalize_endpoint(endpoint: str) -> str:
    """Prefix scheme-less endpoints (e.g. `oss-cn-hangzhou.aliyuncs.com`) with https."""
    if "://" in endpoint:
        return endpoint
    return f"https://{endpoint}"


@dataclass(frozen=True)
class EndpointConfig:
    """
    Represents the connection settings of one S3-compatible bucket.

    Attributes:
        endpoint_url (str): The S3 endpoint URL.
        access_key_id (str): The access key ID.
        secret_access_key (str): The secret access key.
        bucket (str): The bucket name.
        region (str): The region name.
    """

    endpoint_url: str
    access_key_id: str
    secret_access_key: str
    bucket: str
    region: str = DEFAULT_REGION

    def as_boto_dict(self) -> Dict[str, str]:
        """
        Returns the configuration as a dictionary suitable for aiobotocore clients.

        Returns:
            Dict[str, str]: A dictionary of client parameters.
        """
        return {
            "endpoint_url": self.endpoint_url,
            "aws_access_key_id": self.access_key_id,
            "aws_secret_access_key": self.secret_access_key,
            "region_name": self.region,
        }


@dataclass(frozen=True)
class SyncConfig:
    """
    Top-level, immutable configuration for one replication session.

    Attributes:
        source (EndpointConfig): The bucket objects are read from.
        destination (EndpointConfig): The bucket objects are written to.
        src_prefix (str): Only keys under this prefix are enumerated.
        mirror_dir (Path, optional): Root of the local mirror, or None when
            local mirroring is disabled.
        max_keys (int, optional): Requested page size; None means the
            listing hard cap.
        thread_count (int): Number of pages processed concurrently.
        checkpoint_path (Path): Where the listing cursor is persisted.
    """

    source: EndpointConfig
    destination: EndpointConfig
    src_prefix: str = ""
    mirror_dir: Optional[Path] = None
    max_keys: Optional[int] = None
    thread_count: int = DEFAULT_THREAD_COUNT
    checkpoint_path: Path = field(default_factory=lambda: Path(DEFAULT_CHECKPOINT_FILE))

    @property
    def mirror_enabled(self) -> bool:
        """Whether each object is also written below `mirror_dir`."""
        return self.mirror_dir is not None


def read_options(
    path: Path, environ: Optional[Mapping[str, str]] = None
) -> Dict[str, str]:
    """
    Reads the INI file and merges its sections into one flat mapping.

    Sections are merged in the order common, source, dest; a later section
    wins on duplicate options. Environment variables named
    `BUCKET_SYNC_<OPTION>` (upper-cased option name) override file values.

    Args:
        path (Path): The configuration file.
        environ (Mapping[str, str], optional): Environment to read overrides
            from. Defaults to `os.environ`.

    Returns:
        Dict[str, str]: The merged options.

    Raises:
        ConfigError: If the file cannot be read or a section is missing.
    """
    parser: configparser.ConfigParser = configparser.ConfigParser(interpolation=None)
    parser.optionxform = str  # type: ignore[assignment,method-assign]
    try:
        with open(path, encoding="utf-8") as fp:
            parser.read_file(fp)
    except (OSError, configparser.Error) as e:
        raise ConfigError(f"Failed to load '{path}': {e}") from e

    options: Dict[str, str] = {}
    for section in (COMMON_SECTION, SOURCE_SECTION, DEST_SECTION):
        if not parser.has_section(section):
            raise ConfigError(f"Failed to load '{section}' section from '{path}'.")
        options.update(parser.items(section))

    env: Mapping[str, str] = os.environ if environ is None else environ
    for env_name, value in env.items():
        if env_name.startswith(ENV_PREFIX):
            option: str = env_name[len(ENV_PREFIX) :].upper()
            options[_OPTIONS_BY_UPPER.get(option, option)] = value
    return options


def build_config(options: Mapping[str, str]) -> SyncConfig:
    """
    Validates a flat option mapping into a `SyncConfig`.

    Args:
        options (Mapping[str, str]): The merged options.

    Returns:
        SyncConfig: The validated configuration.

    Raises:
        ConfigError: If a required option is missing.
    """
    source: EndpointConfig = EndpointConfig(
        endpoint_url=_normalize_endpoint(_require(options, "srcEndpoint")),
        access_key_id=_require(options, "srcAccessKey"),
        secret_access_key=_require(options, "srcSecretKey"),
        bucket=_require(options, "srcBucket"),
        region=options.get("srcRegion") or DEFAULT_REGION,
    )
    destination: EndpointConfig = EndpointConfig(
        endpoint_url=_normalize_endpoint(_require(options, "destEndpoint")),
        access_key_id=_require(options, "destAccessKey"),
        secret_access_key=_require(options, "destSecretKey"),
        bucket=_require(options, "destBucket"),
        region=options.get("destRegion") or DEFAULT_REGION,
    )

    # `syncMode == "2"` is the older spelling of `downLoadFile == "1"`.
    if "downLoadFile" in options:
        mirror_enabled: bool = options["downLoadFile"].strip() == "1"
    elif "syncMode" in options:
        mirror_enabled = options["syncMode"].strip() == "2"
    else:
        raise ConfigError("Option 'downLoadFile' must be set.")

    mirror_dir: Optional[Path] = None
    if mirror_enabled:
        if "downloadDir" not in options:
            raise ConfigError(
                "Option 'downloadDir' must be set when local mirroring is enabled."
            )
        download_dir: str = options["downloadDir"].strip().rstrip("/")
        mirror_dir = Path(download_dir or DEFAULT_DOWNLOAD_DIR)

    thread_count: int = (
        _parse_positive_int(options.get("thread")) or DEFAULT_THREAD_COUNT
    )

    return SyncConfig(
        source=source,
        destination=destination,
        src_prefix=options.get("srcPrefix", ""),
        mirror_dir=mirror_dir,
        max_keys=_parse_positive_int(options.get("maxKeys")),
        thread_count=thread_count,
        checkpoint_path=Path(options.get("checkpointFile") or DEFAULT_CHECKPOINT_FILE),
    )


def load_config(
    path: Path, environ: Optional[Mapping[str, str]] = None
) -> SyncConfig:
    """
    Loads and validates the configuration file at `path`.

    Args:
        path (Path): The configuration file.
        environ (Mapping[str, str], optional): Environment for overrides.

    Returns:
        SyncConfig: The validated configuration.
    """
    return build_config(read_options(path, environ))
