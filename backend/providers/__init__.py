from .contracts import RideSource, RideSourceError
from .registry import load_ride_source

__all__ = [
    "RideSource",
    "RideSourceError",
    "load_ride_source",
]
