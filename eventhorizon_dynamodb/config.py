import logging
import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Load environment variables from .env file if it exists
load_dotenv()

PACKAGE_LOGGER = "eventhorizon_dynamodb"


class StorageConfig(BaseModel):
    """Configuration for DynamoDB connection, table naming and provisioning."""

    aws_access_key_id: Optional[str] = Field(
        default_factory=lambda: os.getenv("AWS_ACCESS_KEY_ID"),
        description="AWS access key ID"
    )

    aws_secret_access_key: Optional[str] = Field(
        default_factory=lambda: os.getenv("AWS_SECRET_ACCESS_KEY"),
        description="AWS secret access key"
    )

    region_name: str = Field(
        default_factory=lambda: os.getenv("AWS_REGION", "us-east-1"),
        description="AWS region of the DynamoDB service"
    )

    # Endpoint
    endpoint_url: Optional[str] = Field(
        default_factory=lambda: os.getenv("DYNAMODB_ENDPOINT_URL"),
        description="Custom endpoint, e.g. DynamoDB Local or LocalStack"
    )

    # Table naming
    table_prefix: str = Field(
        default_factory=lambda: os.getenv("DYNAMODB_TABLE_PREFIX", ""),
        description="Prefix to add to entity table names"
    )

    event_table_prefix: str = Field(
        default_factory=lambda: os.getenv("EVENTSTORE_TABLE_PREFIX", "eventhorizonEvents_"),
        description="Prefix of event store tables, the namespace is appended to it"
    )

    # Provisioning; zero capacity means on-demand billing
    read_capacity_units: int = Field(
        default=0,
        ge=0,
        description="Provisioned read capacity for created tables and indexes"
    )

    write_capacity_units: int = Field(
        default=0,
        ge=0,
        description="Provisioned write capacity for created tables and indexes"
    )

    # botocore client settings
    max_pool_connections: int = Field(
        default=50,
        description="Size of the botocore HTTP connection pool"
    )

    retries: int = Field(
        default=3,
        description="Number of transport-level retry attempts made by botocore"
    )

    timeout_seconds: float = Field(
        default=30.0,
        description="Connect and read timeout in seconds"
    )

    # Logging
    enable_debug_logging: bool = Field(
        default_factory=lambda: os.getenv("DYNAMODB_DEBUG_LOGGING", "false").lower() == "true",
        description="Log every storage request at DEBUG"
    )

    @field_validator('region_name')
    @classmethod
    def validate_region(cls, v):
        """Validate AWS region name."""
        if not v:
            raise ValueError("AWS region name is required")
        return v

    @field_validator('timeout_seconds')
    @classmethod
    def validate_timeout(cls, v):
        """Validate request timeout."""
        if v <= 0:
            raise ValueError("timeout_seconds must be positive")
        return v

    @model_validator(mode='after')
    def validate_capacity(self):
        """Validate that provisioned capacity is set for both directions or neither."""
        if bool(self.read_capacity_units) != bool(self.write_capacity_units):
            raise ValueError("read_capacity_units and write_capacity_units must both be set or both be 0")
        return self

    @property
    def uses_provisioned_throughput(self) -> bool:
        return self.read_capacity_units > 0

    def get_table_name(self, base_name: str) -> str:
        """Get the full entity table name with prefix.

        Args:
            base_name: Base table name

        Returns:
            Full table name with prefix
        """
        return f"{self.table_prefix}{base_name}"

    def configure_logging(self) -> None:
        """Apply ``enable_debug_logging`` to the package logger."""
        if self.enable_debug_logging:
            logging.getLogger(PACKAGE_LOGGER).setLevel(logging.DEBUG)

    @classmethod
    def from_env(cls) -> 'StorageConfig':
        """Create configuration from environment variables.

        Returns:
            StorageConfig instance
        """
        return cls()

    @classmethod
    def for_local_development(cls, endpoint_url: str = "http://localhost:8000") -> 'StorageConfig':
        """Create configuration for DynamoDB Local or LocalStack.

        Returns:
            StorageConfig instance configured for local development
        """
        return cls(
            aws_access_key_id="fakeMyKeyId",
            aws_secret_access_key="fakeSecretAccessKey",
            region_name="us-east-1",
            endpoint_url=endpoint_url,
            enable_debug_logging=True
        )

    model_config = ConfigDict(
        validate_assignment=True
    )
