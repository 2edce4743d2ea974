"""Sales-incentive campaign engine.

Having this file ensures the 'incentives' directory is recognized as a
standard Python package during test discovery.
"""

__all__: list[str] = []
