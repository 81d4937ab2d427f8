"""Dockship: concurrent container image distribution over SSH.

Exports each configured image once on the control host, then uploads
and loads it on every target host in parallel, with per-host retries,
remote hooks and a per-image report.
"""

__version__ = "1.0.0"
__description__ = "Concurrent container image distribution to many hosts over SSH"

from dockship.core.pipeline import DistributionPipeline, start

__all__ = ["DistributionPipeline", "start", "__version__"]
