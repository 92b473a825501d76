"""Migration of Fedora installations into the directory-per-object layout."""

from .layout import MigrationResults, migrate_data_from_fedora

__all__ = ["MigrationResults", "migrate_data_from_fedora"]
