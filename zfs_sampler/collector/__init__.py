# zfs_sampler/collector/__init__.py - Event collection module
"""
Collector module: from captured events to per-window samples.

This module provides:
- tracer.py: EventSource interface and the BCC zio tracer
- synthetic.py: Scripted event source for tests and dry runs
- event_handler.py: Operation events and raw record decoding
- guid_encoder.py: Compact GUID tokens
- aggregator.py: Windowed aggregation into rate samples
- scheduler.py: Window ticks and session lifetime
- session.py: One capture session
- supervisor.py: Session restart loop
"""
