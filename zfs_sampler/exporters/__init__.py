# zfs_sampler/exporters/__init__.py - Exporters module
"""
Publishers for window samples.

This module provides:
- collectd.py: PUTVAL lines over the unixsock socket or a debug stream
- prometheus.py: Prometheus gauges
- stdout.py: Console table
"""
