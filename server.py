import uvicorn  # type: ignore

from signflow.core import config
from signflow.utils import get_logger, setup_logging

setup_logging(config.LOG_LEVEL)
log = get_logger(__name__)

if __name__ == "__main__":
    log.info("Running server")
    uvicorn.run("signflow.main:app", reload=True, host="127.0.0.1", port=8000)
