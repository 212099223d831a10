"""
Meeting Bot Lifecycle Service
Flask application that attaches Recall.ai recording bots to sessions and
keeps session rows in sync with the bots' state.
"""

import logging
import os
import sys

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "src"))

from meeting_bots.api.routes import create_app
from meeting_bots.config import BotServiceConfig

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("meeting_bots")

config = BotServiceConfig.from_env()
for problem in config.validate():
    logger.warning("Configuration: %s", problem)

app = create_app(config)
app.extensions["meeting_bots"].loop.start()


if __name__ == '__main__':
    port = int(os.getenv("PORT", 8080))
    debug = os.getenv("DEBUG", "false").lower() == "true"

    logger.info("Starting Meeting Bot Lifecycle Service on port %s", port)
    logger.info("Webhook URL: %s/<session_id>", config.webhook_base_url)

    app.run(host='0.0.0.0', port=port, debug=debug)
