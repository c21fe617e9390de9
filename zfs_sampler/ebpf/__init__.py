# zfs_sampler/ebpf/__init__.py - eBPF programs module
"""
eBPF programs loaded by the capture sources.

- zio_tracer.c: times zfs_read/zfs_write and reports pool/dataset GUIDs
"""
