# Infrastructure Layer
# ====================
# Contains all external service integrations:
# - sms/: Vonage SMS gateway behind a provider interface
# - geolocation/: ipapi.co IP-to-location lookup
# - persistence/: SQLite repository
# - qr/: QR code rendering for public card links
# - config/: Environment and settings management
#
# This layer can be replaced entirely without affecting domain/application layers.
