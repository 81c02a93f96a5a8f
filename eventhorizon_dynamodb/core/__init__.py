"""
Core infrastructure components for DynamoDB operations.

This module contains the table-service adapter used by the repository and the
event store:
- TableGateway: Thin wrapper over boto3 DynamoDB table operations
- map_dynamodb_error: botocore error re-classification
- Factory functions for creating resources and gateways
"""

from .table_gateway import (
    TableGateway,
    create_dynamodb_resource,
    create_table_gateway,
    map_dynamodb_error,
)

__all__ = [
    "TableGateway",
    "create_dynamodb_resource",
    "create_table_gateway",
    "map_dynamodb_error",
]
