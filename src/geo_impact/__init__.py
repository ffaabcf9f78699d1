from .config import EngineConfig, ImpactFilters
from .coordinator import ImpactCoordinator, to_geojson
from .divisions import DivisionTree
from .errors import GeoImpactError, InputError
from .models import DisasterRecord, Division, GeographicImpactResult, ImpactValue, Sector
from .sources import ImpactStore, InMemoryImpactStore

__all__ = [
    "EngineConfig",
    "ImpactFilters",
    "ImpactCoordinator",
    "to_geojson",
    "DivisionTree",
    "GeoImpactError",
    "InputError",
    "DisasterRecord",
    "Division",
    "GeographicImpactResult",
    "ImpactValue",
    "Sector",
    "ImpactStore",
    "InMemoryImpactStore",
]
