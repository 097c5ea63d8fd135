"""Azure DevOps core - transport, configuration, errors and pagination.

Modules:
- config: settings loaded from ADO_* environment variables or a JSON file
- client: authenticated REST client with retry and backoff
- errors: upstream errors, error taxonomy and classification
- pagination: maxResults/continuationToken normalization
"""
import logging

__version__ = "0.1.0"

logging.getLogger("ado-core").addHandler(logging.NullHandler())
