import base64

import pymupdf

from app.utils.config import Settings

settings = Settings()


def render_slide_image(doc: pymupdf.Document, page_index: int) -> str:
    """Renders one page as a PNG and returns it base64 encoded."""
    page = doc.load_page(page_index)
    # Use a higher DPI for better quality
    matrix = pymupdf.Matrix(settings.slide_render_zoom, settings.slide_render_zoom)
    pix = page.get_pixmap(matrix=matrix)
    return base64.b64encode(pix.tobytes("png")).decode("utf-8")
