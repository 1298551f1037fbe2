"""
CardLink - Web Server Entry Point
=================================

Run this to start the web app:
    python main.py

Public cards are served at http://127.0.0.1:8000/c/<card_id>
and the owner API under http://127.0.0.1:8000/api/.
"""

import os

import uvicorn


def main():
    """Start the web server."""
    host = os.getenv("CARDLINK_HOST", "127.0.0.1")
    port = int(os.getenv("CARDLINK_PORT", "8000"))

    print("\n" + "=" * 50)
    print("   CardLink - Digital Business Cards")
    print("=" * 50)
    print(f"\n   Starting server at http://{host}:{port}")
    print("   Press Ctrl+C to stop\n")

    uvicorn.run(
        "cardlink.web.app:app",
        host=host,
        port=port,
        reload=os.getenv("CARDLINK_RELOAD", "").lower() in ("1", "true", "yes"),
        log_level="info"
    )


if __name__ == "__main__":
    main()
