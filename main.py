# main.py

import uvicorn

from app.config import Settings
from app.main import app
from logger import logger

# Fetch PORT from environment or default to 8000 for local testing
PORT = Settings.from_env().port


# Run the app with Uvicorn when executed directly
if __name__ == "__main__":
    logger.info(f"Trading API server running on http://0.0.0.0:{PORT}")
    uvicorn.run(app, host="0.0.0.0", port=PORT)
