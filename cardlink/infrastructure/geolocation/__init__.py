from .ip_locator import IPLocator, GeolocationError, extract_client_address, UNKNOWN_ADDRESS

__all__ = ["IPLocator", "GeolocationError", "extract_client_address", "UNKNOWN_ADDRESS"]
