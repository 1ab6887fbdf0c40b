"""speedprobe: discover speed-test servers, rank them by latency, pick one."""

__version__ = "0.3.0"
