from .settings import Settings, SmsSettings, GeolocationSettings, get_settings

__all__ = ["Settings", "SmsSettings", "GeolocationSettings", "get_settings"]
