# =========================
# propsignal/main.py
# =========================
from __future__ import annotations

import logging
from fastapi.middleware.cors import CORSMiddleware

from propsignal.deps import settings
from propsignal.docs import create_app
from propsignal.routers import chat, health

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

# Quiet noisy third-party loggers
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("urllib3").setLevel(logging.WARNING)

app = create_app(settings())

# CORS (dev-open; tighten for prod)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(chat.router)
