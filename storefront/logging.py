import logging.config
import os

# Ensure logs directory exists
os.makedirs("logs", exist_ok=True)

logging.config.fileConfig(
    os.path.join(os.path.dirname(os.path.abspath(__file__)), "logging.conf"),
    disable_existing_loggers=False,
)


logger = logging.getLogger("storefront")
