from .qr_renderer import render_qr_png, hex_to_rgb

__all__ = ["render_qr_png", "hex_to_rgb"]
