"""
Application Configuration
Reads settings from environment variables (and a local .env file)
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class Settings:
    """Runtime settings for one application instance."""

    mongo_uri: str = "mongodb://localhost:27017/medride"
    mongo_alias: str = "default"
    jwt_secret_key: str = "your-secret-key-change-in-production"
    jwt_algorithm: str = "HS256"
    ws_require_token: bool = False
    booking_radius_km: float = 5.0
    booking_max_candidates: int = 10
    log_level: str = "INFO"
    cors_origin: str = "http://localhost:3000"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            mongo_uri=os.getenv("MONGO_URI", cls.mongo_uri),
            mongo_alias=os.getenv("MONGO_DB_ALIAS", cls.mongo_alias),
            jwt_secret_key=os.getenv("JWT_SECRET_KEY", cls.jwt_secret_key),
            jwt_algorithm=os.getenv("JWT_ALGORITHM", cls.jwt_algorithm),
            ws_require_token=_env_flag("WS_REQUIRE_TOKEN"),
            booking_radius_km=float(
                os.getenv("BOOKING_RADIUS_KM", str(cls.booking_radius_km))
            ),
            booking_max_candidates=int(
                os.getenv("BOOKING_MAX_CANDIDATES", str(cls.booking_max_candidates))
            ),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
            cors_origin=os.getenv("CORS_ORIGIN", cls.cors_origin),
        )
