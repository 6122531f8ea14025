from ecolearn.health.router import router


__all__ = ["router"]
