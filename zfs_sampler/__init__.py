# zfs_sampler/__init__.py
"""
ZFS I/O sampler: per-pool and per-dataset latency, bandwidth and IOPS
rates published to collectd.
"""

__version__ = "0.1.0"
