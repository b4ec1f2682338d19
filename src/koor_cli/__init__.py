"""koor-cli public surface."""

from koor_cli.client import DEFAULT_SERVER, KoorClient, ServerResponse
from koor_cli.descriptors import (
    RequestDescriptor,
    ResourcePath,
    compact_json,
    encode_query,
    parse_resource_path,
)
from koor_cli.errors import KoorCLIError, StreamUnavailableError, TransportError, UsageError
from koor_cli.schemas import (
    BackupArtifact,
    ContractTestResult,
    ContractValidation,
    Violation,
)

__all__ = [
    "KoorCLIError",
    "TransportError",
    "UsageError",
    "StreamUnavailableError",
    "DEFAULT_SERVER",
    "KoorClient",
    "ServerResponse",
    "RequestDescriptor",
    "ResourcePath",
    "compact_json",
    "encode_query",
    "parse_resource_path",
    "BackupArtifact",
    "ContractTestResult",
    "ContractValidation",
    "Violation",
]
