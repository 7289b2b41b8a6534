import asyncio
import logging

import pymupdf

from app.schemas.extraction import ExtractionPayload
from app.schemas.lecture import LectureStatus
from app.services.extraction.image_processing import render_slide_image
from app.services.extraction.s3_utils import download_pdf, get_s3_client
from app.services.store.base import RecordStore
from app.utils.config import Settings

settings = Settings()


async def extract_lecture(store: RecordStore, payload: ExtractionPayload) -> int:
    """
    Turns an uploaded deck into empty slide records:
    - Downloads the PDF from S3 and renders every page to a PNG.
    - Creates one slide per page carrying only its image.
    - Sets the lecture's slide count and marks it READY.

    On any failure the lecture's slides are removed and the lecture is marked
    FAILED. Returns the number of slides created.
    """
    lecture_id = payload.lecture_id

    lecture = await store.get_lecture(lecture_id)
    if lecture is None:
        logging.warning(
            f"Lecture with ID {lecture_id} not found. Acknowledging message and stopping."
        )
        return 0

    s3_client = None
    doc = None
    try:
        s3_client = get_s3_client()
        pdf_bytes = await asyncio.to_thread(
            download_pdf, s3_client, settings.s3_bucket_name, payload.storage_path
        )
        doc = pymupdf.open(stream=pdf_bytes, filetype="pdf")
        total_slides = doc.page_count
        if total_slides == 0:
            raise ValueError(f"Deck for lecture {lecture_id} has no pages")

        for page_index in range(total_slides):
            await store.create_slide(
                lecture_id, page_index + 1, render_slide_image(doc, page_index)
            )

        await store.update_lecture(
            lecture_id, {"num_slides": total_slides, "status": LectureStatus.ready}
        )
        logging.info(f"Extracted {total_slides} slides for lecture {lecture_id}")
        return total_slides

    except Exception as e:
        logging.error(f"Extraction failed for lecture {lecture_id}: {e}", exc_info=True)
        await _rollback(store, payload)
        raise
    finally:
        if doc:
            doc.close()
        if s3_client:
            s3_client.close()


async def _rollback(store: RecordStore, payload: ExtractionPayload) -> None:
    lecture_id = payload.lecture_id
    try:
        removed = await store.delete_slides(lecture_id)
        await store.update_lecture(lecture_id, {"status": LectureStatus.failed})
        logging.info(f"Rolled back {removed} slides for lecture {lecture_id}")
    except Exception as e:
        logging.error(f"Failed to roll back extraction of lecture {lecture_id}: {e}")
