#!/usr/bin/env python3
"""
Run script for the Oral Assessment Backend
"""
import uvicorn

from oralassess.config.settings import settings

if __name__ == "__main__":
    uvicorn.run(
        "oralassess.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
