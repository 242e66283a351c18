"""Use-case layer for the storage assistant workflow.

Each module coordinates domain objects and ports without performing transport
I/O directly; blocking adapter calls are handed to an ``Offload`` so the
owning event loop never waits on the network.
"""
