import ipaddress
from functools import lru_cache
from pathlib import Path
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

TEMPLATE_DIR = Path(__file__).resolve().parents[2] / "data" / "templates"


class Settings(BaseSettings):
    app_name: str = "proxystats"
    env: str = "development"
    log_level: str = "INFO"

    product_name: str = "proxystats"
    product_version: str = "0.1.0"
    product_website: str = "https://github.com/proxystats/proxystats"

    stat_host: str = "proxystats.stats"
    stat_page: Path | None = None
    stat_templates: str = (
        f"text/html={TEMPLATE_DIR / 'stats.html'},"
        f"application/json={TEMPLATE_DIR / 'stats.json'}"
    )

    max_clients: int = 100
    allow: str = ""
    deny: str = ""

    rate_limit_global: str = "100/minute"

    model_config = SettingsConfigDict(env_file=".env", env_prefix="", extra="ignore")

    @model_validator(mode="after")
    def validate_proxy_settings(self) -> "Settings":
        if self.max_clients < 1:
            raise ValueError("MAX_CLIENTS must be at least 1")
        for entry in self.allowed_networks + self.denied_networks:
            try:
                ipaddress.ip_network(entry, strict=False)
            except ValueError as exc:
                raise ValueError(f"Invalid access list entry: {entry}") from exc
        for pair in self.stat_template_pairs:
            if not pair[0]:
                raise ValueError("STAT_TEMPLATES entries must be content-type=path")
        return self

    @property
    def allowed_networks(self) -> list[str]:
        return [a.strip() for a in self.allow.split(",") if a.strip()]

    @property
    def denied_networks(self) -> list[str]:
        return [d.strip() for d in self.deny.split(",") if d.strip()]

    @property
    def stat_template_pairs(self) -> list[tuple[str, Path]]:
        pairs = []
        for item in self.stat_templates.split(","):
            if not item.strip():
                continue
            content_type, _, path = item.partition("=")
            pairs.append((content_type.strip(), Path(path.strip())))
        return pairs


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
