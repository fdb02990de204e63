"""
lesson_snapshots – versioned denormalization of Revision → Slide → Track events.

Import path convention::

    from lesson_snapshots.application.denormalization import DenormalizationEngine
    from lesson_snapshots.adapters.mongodb import MongoDocumentStore
    from lesson_snapshots.kernel.errors import DomainError
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
