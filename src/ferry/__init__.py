"""
Ferry - move and reshape records between data stores.

Packages:
- ferry.core: errors, logging, settings
- ferry.stores: store drivers (memory, sqlite, postgresql)
- ferry.framework: operation definitions, executor, extraction flow control
- ferry.scheduling: bounded-concurrency pass scheduler
- ferry.cli: ``ferry`` command line
"""

__version__ = "0.1.0"
