import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

import uvicorn

from refskills.api.server import create_app
from refskills.config import configure_logging, load_config


def main() -> None:
    # Missing configuration is fatal here, before anything binds.
    cfg = load_config()
    configure_logging(cfg)
    host, port = cfg.bind_host_port
    uvicorn.run(create_app(cfg), host=host, port=port, log_level=cfg.LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
