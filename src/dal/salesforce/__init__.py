"""Salesforce REST adapters for the query engine collaborators."""

from dal.salesforce.config import SalesforceConfig
from dal.salesforce.executor import SalesforceQueryExecutor
from dal.salesforce.schema_provider import SalesforceSchemaProvider

__all__ = ["SalesforceConfig", "SalesforceQueryExecutor", "SalesforceSchemaProvider"]
