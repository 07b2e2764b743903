import os
from typing import Mapping, Optional


SUPPORTED_STORES = {"memory", "mongo"}
SUPPORTED_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class NodeFactoryConfig:
    """
    Central configuration object for the node factory service.
    Controls the store backend, cache bound and server surface.
    """

    def __init__(
        self,
        environment: str = "production",
        port: int = 3000,
        store: str = "mongo",          # "memory" or "mongo"
        db_url: str = "mongodb://localhost:27017",
        db_name: str = "node-factory",
        db_collection: str = "nodes",
        cache_max_items: int = 1000,
        static_directory: Optional[str] = None,
        log_level: str = "INFO",
    ):
        self.environment = environment
        self.port = port
        self.store = store
        self.db_url = db_url
        self.db_name = db_name
        self.db_collection = db_collection
        self.cache_max_items = cache_max_items
        self.static_directory = static_directory
        self.log_level = log_level.upper() if isinstance(log_level, str) else log_level

        self._validate()

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "NodeFactoryConfig":
        """Build a config from environment variables, falling back to defaults."""
        env = os.environ if environ is None else environ

        def _int(name: str, default: int) -> int:
            raw = env.get(name)
            if raw is None or raw == "":
                return default
            try:
                return int(raw)
            except ValueError:
                raise ValueError(f"{name} must be an integer, got {raw!r}")

        return cls(
            environment=env.get("NODE_ENV", "production"),
            port=_int("PORT", 3000),
            store=env.get("NODE_FACTORY_STORE", "mongo"),
            db_url=env.get("NODE_FACTORY_DB_URL", "mongodb://localhost:27017"),
            db_name=env.get("NODE_FACTORY_DB_NAME", "node-factory"),
            db_collection=env.get("NODE_FACTORY_DB_COLLECTION", "nodes"),
            cache_max_items=_int("CACHE_MAX_ITEMS", 1000),
            static_directory=env.get("SERVE_STATIC_DIRECTORY") or None,
            log_level=env.get("LOG_LEVEL", "INFO"),
        )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def _validate(self):
        if self.store not in SUPPORTED_STORES:
            raise ValueError(f"Unsupported store: {self.store}")

        if not isinstance(self.port, int) or not 0 < self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}")

        if not isinstance(self.cache_max_items, int) or self.cache_max_items <= 0:
            raise ValueError("cache_max_items must be a positive integer")

        if self.log_level not in SUPPORTED_LOG_LEVELS:
            raise ValueError(f"Unsupported log_level: {self.log_level}")

        if self.store == "mongo" and not self.db_url:
            raise ValueError("Mongo store requires a db_url")
