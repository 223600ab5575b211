"""Custom exceptions for the oitrader analytics service.

Analytics functions only raise for caller mistakes (unordered or misaligned
series, incompatible grids). Missing data is never an error there. The
upstream errors are raised by the exchange layer and translated into HTTP
status codes by the dashboard.
"""


class OITraderError(Exception):
    """Base exception for all oitrader errors."""


class SeriesOrderError(OITraderError):
    """Raised when a series is not ascending by timestamp."""


class SeriesAlignmentError(OITraderError):
    """Raised when two index-aligned series have different lengths."""


class HeatmapMismatchError(OITraderError):
    """Raised when heatmaps with different bucket steps are combined."""


class HeatmapTooLargeError(OITraderError):
    """Raised when a requested heatmap grid exceeds the configured cell cap."""


class UpstreamUnavailableError(OITraderError):
    """Raised when a data source is known to be permanently unavailable."""


class ExchangeError(OITraderError):
    """Raised when an upstream exchange request fails."""