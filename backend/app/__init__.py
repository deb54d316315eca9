from .app import TruckCheckApp

__all__ = ["TruckCheckApp"]
