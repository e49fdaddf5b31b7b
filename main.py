import logging

import uvicorn
from dotenv import load_dotenv

# Carica variabili ambiente
load_dotenv()

# Configurazione logging colorato PRIMA di qualsiasi altro import che usa logging
from core.config import get_config
from core.logger import setup_colored_logging

config = get_config()
setup_colored_logging("processor", level=config.log_level)

logger = logging.getLogger(__name__)

if __name__ == "__main__":
    host = "0.0.0.0"

    logger.info(f"Starting {config.processor_name} on {host}:{config.port}")
    logger.info(
        f"Directories: bulk_scan={config.bulk_scan_dir}, "
        f"comparison={config.comparison_dir}, export={config.export_dir}"
    )

    try:
        # Un solo worker: lock export e task in background sono per processo
        uvicorn.run(
            "api.main:app",
            host=host,
            port=config.port,
            workers=1,
            reload=False,
            log_level=config.log_level.lower(),
            access_log=True,
            use_colors=False  # Disabilita colori di uvicorn, usiamo colorlog
        )
    except Exception as e:
        logger.error(f"Failed to start server: {e}")
        raise
