#!/usr/bin/env python3
"""Entry point for running the PickCreator deals API server."""

import os
import uvicorn
from dotenv import load_dotenv

load_dotenv()

if __name__ == "__main__":
    port = int(os.getenv("PORT", "8000"))
    uvicorn.run(
        "pickcreator.main:app",
        host="0.0.0.0",
        port=port,
        reload=True,
    )
