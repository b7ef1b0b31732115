from __future__ import annotations

import uvicorn

from stockpipe.core.config import settings


if __name__ == "__main__":
    uvicorn.run(
        "stockpipe.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
