import os
from dataclasses import dataclass
from typing import Optional

PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))


@dataclass(frozen=True)
class Config:
    host: str = "0.0.0.0"
    port: int = 3000
    root: str = PACKAGE_DIR
    index_name: str = "index.html"
    backlog: int = 128
    # None means block forever on a slow client
    recv_timeout: Optional[float] = None
    accept_timeout: float = 1.0
    # how long stop() waits for in-flight requests before cutting idle peers
    shutdown_grace: float = 2.0
    max_header_bytes: int = 65536
    chunk_size: int = 64 * 1024
    debug: bool = False

    @property
    def index_path(self) -> str:
        return os.path.join(self.root, self.index_name)
