"""
Top-level package for the Fedora repository extraction utility.

This package bundles all components required to migrate a Fedora 3
installation into a directory-per-object layout and to extract CSV tables
from it with user supplied scripts, one table per script.  Modules are split
into subpackages:

* :mod:`fedora_migrator.repository` – FOXML/RELS-EXT parsing and read-only object access
* :mod:`fedora_migrator.parsers` – XML datastream to script tree conversion
* :mod:`fedora_migrator.scripting` – sandboxed script host and its functions
* :mod:`fedora_migrator.migrators` – Fedora objectStore/datastreamStore migration
* :mod:`fedora_migrator.utils` – errors, reports, CSV generation and sorting

Each layer has no direct knowledge of configuration or execution strategy;
orchestration is handled in the extraction_tool.
"""

__version__ = "0.1.0"
