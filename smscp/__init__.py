"""
smscp.

Messaging-notes core: claim tokens, credential hashing, and a storage
contract with relational and document-store backends.

- core/: configuration, logging, exceptions, security primitives
- models/: SQLAlchemy table models (relational backend)
- schemas/: value objects handed to callers
- storage/: persistence backends
- services/: account orchestration and collaborator interfaces
"""

__version__ = "0.1.0"
