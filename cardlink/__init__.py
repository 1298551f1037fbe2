# CardLink - Digital Business Cards with SMS Introductions
# ==========================================================
# Owners publish a contact card, viewers send a connection request from the
# public page, and the owner gets an SMS introduction. Layered Architecture:
#
# ARCHITECTURE LAYERS:
# - Presentation:   FastAPI web app (public card page, owner JSON API)
# - Application:    Use cases and orchestration (introductions, analytics)
# - Domain:         Records and pure serialization (no external dependencies)
# - Infrastructure: External services (SQLite, Vonage SMS, ipapi.co, QR codes)
#
# This design allows easy replacement of infrastructure components
# (e.g., swap SQLite for Postgres, or Vonage for another SMS gateway).
