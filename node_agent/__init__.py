# Host metrics agent: collect snapshots, aggregate them, submit them to a collector.

__version__ = "1.0.0"
