"""MongoDB adapter – motor-backed document store.

Requires the ``mongodb`` extra::

    pip install "lesson-snapshots[mongodb]"
"""

from lesson_snapshots.adapters.mongodb.document_store import MongoDocumentStore

__all__ = ["MongoDocumentStore"]
