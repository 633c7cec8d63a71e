"""
sportml-chat FastAPI server example.

Builds the app from explicit settings instead of the environment, with a
tighter rate limit and schedule enrichment turned off.

Prerequisites:
    pip install "sportml-chat[server]"
    ollama pull llama3.2:3b

Run:
    uvicorn examples.fastapi_server:app --reload

Usage:
    curl -X POST http://localhost:8000/api/ai \
        -H "Content-Type: application/json" \
        -d '{"message": "Who holds the 100m world record?"}'
"""

import os

from sportml_chat import Settings
from sportml_chat.server import configure_logging, create_app

settings = Settings(
    groq_api_key=os.environ.get("GROQ_API_KEY"),
    rate_limit_per_minute=10,
    enrichment_enabled=False,
    log_level="DEBUG",
)
configure_logging(settings.log_level)

app = create_app(settings)
