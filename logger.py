# logger.py

import logging
import os

# Initialize Logger
logger = logging.getLogger("portfolio_api")
level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
logger.setLevel(level)

# Create handlers
console_handler = logging.StreamHandler()
console_handler.setLevel(level)

# Create formatter and add it to the handlers
formatter = logging.Formatter(
    '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
console_handler.setFormatter(formatter)

# Add handlers to the logger
if not logger.hasHandlers():
    logger.addHandler(console_handler)
