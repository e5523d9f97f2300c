# trust_safety/config/models/core.py
from typing import List, Literal

from pydantic import BaseModel, ConfigDict


class LoggingConfig(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    level: str = "INFO"
    json_enabled: bool = False
    service_name: str = "trust-safety"
    quiet_loggers: List[str] = ["aiohttp.access", "asyncio"]

    @property
    def format(self) -> Literal["text", "json"]:
        return "json" if self.json_enabled else "text"
