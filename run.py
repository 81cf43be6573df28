#!/usr/bin/env python3
"""
Run script for the Care Coordination API.
This script launches the FastAPI server with the auth and users services mounted as routers.
"""
import os
import sys
import traceback
import uvicorn

if __name__ == "__main__":
    port = int(os.getenv("PORT", 8000))
    try:
        print("Starting Care Coordination API server...")
        print(f"Access the API at http://localhost:{port}")
        print(f"API documentation at http://localhost:{port}/docs")

        uvicorn.run(
            "careservices.main:app",
            host=os.getenv("HOST", "0.0.0.0"),
            port=port,
            reload=os.getenv("APP_ENV", "production").lower() == "development",
            log_level=os.getenv("LOG_LEVEL", "info").lower()
        )
    except Exception as e:
        print(f"Error starting server: {e}")
        traceback.print_exc()
        sys.exit(1)
