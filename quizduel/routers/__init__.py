"""API routers."""
from quizduel.routers import challenges, health

__all__ = [
    "challenges",
    "health",
]
