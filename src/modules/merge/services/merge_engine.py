import io
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from PyPDF2 import PdfReader, PdfWriter
from PyPDF2.generic import NameObject, NumberObject

from modules.common.errors import InvalidSourceError, SizeLimitError
from modules.documents.services.coordinates import normalize_rotation

logger = logging.getLogger(__name__)

PRODUCER = "esign-documents merge"


@dataclass(frozen=True)
class MergeOutput:
    data: bytes
    total_pages: int
    output_name: str
    compression_info: dict


def page_rotation(page) -> int:
    return int(page["/Rotate"]) if "/Rotate" in page else 0


def set_page_rotation(page, degrees: int) -> None:
    page[NameObject("/Rotate")] = NumberObject(normalize_rotation(degrees))


def load_pdf(name: str, data: bytes) -> PdfReader:
    """Abre un PDF fuente; cualquier fallo de parseo se reporta con su nombre."""
    if not data.startswith(b"%PDF-"):
        raise InvalidSourceError(name, "no es un PDF válido (header incorrecto)")
    try:
        reader = PdfReader(io.BytesIO(data), strict=False)
        if reader.is_encrypted and not reader.decrypt(""):
            raise InvalidSourceError(name, "está protegido con contraseña")
        page_count = len(reader.pages)
    except InvalidSourceError:
        raise
    except Exception as exc:
        raise InvalidSourceError(name, "está corrupto o dañado") from exc
    if page_count == 0:
        raise InvalidSourceError(name, "no tiene páginas válidas")
    return reader


class MergeEngine:
    """
    Concatena N PDFs en uno, en el orden recibido.

    The output carries fixed metadata and no timestamps, so merging the same
    ordered sources twice yields the same bytes.
    """

    def __init__(self, max_total_bytes: int, compress: bool = True):
        self.max_total_bytes = max_total_bytes
        self.compress = compress

    def merge(self, sources: Sequence[tuple[str, bytes]], output_name: str,
              rotations: Optional[dict] = None) -> MergeOutput:
        total = sum(len(data) for _, data in sources)
        if total > self.max_total_bytes:
            raise SizeLimitError(
                f"El tamaño combinado ({total} bytes) excede el máximo de {self.max_total_bytes} bytes"
            )

        readers = [(name, load_pdf(name, data)) for name, data in sources]

        writer = PdfWriter()
        for name, reader in readers:
            for page in reader.pages:
                writer.add_page(page)
            logger.debug("Appended %d pages from %s", len(reader.pages), name)

        total_pages = len(writer.pages)
        for page_number, degrees in (rotations or {}).items():
            index = int(page_number) - 1
            if not 0 <= index < total_pages:
                continue
            page = writer.pages[index]
            set_page_rotation(page, page_rotation(page) + normalize_rotation(int(degrees)))

        writer.add_metadata({"/Producer": PRODUCER, "/Title": output_name})
        original = self._render(writer)
        final = original
        if self.compress:
            for page in writer.pages:
                page.compress_content_streams()
            final = self._render(writer)

        reduction = round((len(original) - len(final)) / len(original) * 100, 1) if original else 0.0
        logger.info("Merged %d sources into %s (%d pages, %d bytes)",
                    len(readers), output_name, total_pages, len(final))
        return MergeOutput(
            data=final,
            total_pages=total_pages,
            output_name=output_name,
            compression_info={
                "originalSize": len(original),
                "compressedSize": len(final),
                "reductionPercentage": reduction,
                "compressionEnabled": self.compress,
            },
        )

    @staticmethod
    def _render(writer: PdfWriter) -> bytes:
        buffer = io.BytesIO()
        writer.write(buffer)
        return buffer.getvalue()
