#!/usr/bin/env python3
"""
Run script for the voxmemo API
"""
import uvicorn

from voxmemo.config.settings import settings
from voxmemo.main import app

if __name__ == "__main__":
    uvicorn.run(app, host=settings.host, port=settings.port, reload=settings.debug)
