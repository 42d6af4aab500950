"""OCR service for scanned PDF documents.

Pipeline per document:
1. Rasterize every page with pdf2image (poppler) at a fixed density
2. Recognize each page with Tesseract (Italian language pack, uniform text
   block segmentation, LSTM engine)
3. Join page texts in page order

Based on pytesseract and pdf2image documentation:
https://github.com/madmaze/pytesseract
https://github.com/Belval/pdf2image
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytesseract
from pdf2image import convert_from_path
from PIL import Image
from pydantic import BaseModel

from taxdocs.shared import metrics
from taxdocs.shared.config import Settings
from taxdocs.shared.errors import ExtractionPipelineError

logger = logging.getLogger(__name__)


class OCRResult(BaseModel):
    """Result of OCR over a whole document.

    Attributes:
        text: All page texts joined with newlines, in page order
        pages: Text of each page
    """

    text: str
    pages: list[str]

    @property
    def page_count(self) -> int:
        return len(self.pages)


class OCRService:
    """OCR service using Tesseract engine over rasterized PDF pages.

    Stage failures raise ExtractionPipelineError naming the stage
    ('rasterize' or 'ocr'); no partial text is returned.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize OCR service.

        Args:
            settings: Application settings
        """
        self.settings = settings
        self._configure_tesseract()

    def _configure_tesseract(self) -> None:
        """Configure Tesseract command path from settings.

        Common paths:
        - Linux: /usr/bin/tesseract
        - macOS: /opt/homebrew/bin/tesseract or /usr/local/bin/tesseract
        - Windows: C:\\Program Files\\Tesseract-OCR\\tesseract.exe
        """
        if self.settings.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = self.settings.tesseract_cmd

    @property
    def tesseract_config(self) -> str:
        """Engine and page segmentation flags passed to Tesseract."""
        return f"--oem {self.settings.ocr_oem} --psm {self.settings.ocr_psm}"

    def rasterize(self, pdf_path: Path) -> list[Image.Image]:
        """Convert every PDF page into an image bounded by ocr_max_page_size.

        Raises:
            ExtractionPipelineError: stage 'rasterize'
        """
        try:
            images = convert_from_path(
                str(pdf_path),
                dpi=self.settings.ocr_dpi,
                fmt="png",
                poppler_path=self.settings.poppler_path,
            )
        except Exception as e:
            raise ExtractionPipelineError("rasterize", str(e)) from e

        if not images:
            raise ExtractionPipelineError("rasterize", f"No pages found in {pdf_path.name}")

        bound = self.settings.ocr_max_page_size
        for image in images:
            # thumbnail keeps aspect ratio and never upscales
            image.thumbnail((bound, bound))
        return images

    def recognize(self, image: Image.Image) -> str:
        """Run Tesseract on one page image.

        Raises:
            ExtractionPipelineError: stage 'ocr'
        """
        try:
            return pytesseract.image_to_string(
                image, lang=self.settings.ocr_language, config=self.tesseract_config
            )
        except Exception as e:
            raise ExtractionPipelineError("ocr", str(e)) from e

    def extract_text(self, pdf_path: Path) -> OCRResult:
        """Extract text from every page of a PDF.

        Pages may be recognized in parallel (settings.ocr_workers); the
        joined text always follows page order.

        Args:
            pdf_path: Path to PDF file

        Returns:
            OCRResult with per-page and joined text

        Raises:
            ExtractionPipelineError: rasterization or OCR failed
        """
        start_time = time.time()
        images = self.rasterize(pdf_path)

        workers = min(self.settings.ocr_workers, len(images))
        if workers > 1:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                pages = list(executor.map(self.recognize, images))
        else:
            pages = [self.recognize(image) for image in images]

        metrics.ocr_pages_total.inc(len(pages))
        metrics.ocr_processing_duration_seconds.observe(time.time() - start_time)
        logger.info(f"OCR completed for {pdf_path.name}: {len(pages)} page(s)")
        return OCRResult(text="\n".join(pages), pages=pages)
