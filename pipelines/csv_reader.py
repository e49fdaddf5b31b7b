"""
Lettura in streaming del CSV di riferimento (location, item).

Encoding rilevato sui primi byte, header validato, righe lette una alla volta.
"""
import codecs
import csv
import logging
from typing import Iterator, List, TextIO, Tuple

import chardet

from core.errors import FileFormatError
from pipelines.types import ReferenceRow

logger = logging.getLogger(__name__)

ENCODING_SAMPLE_BYTES = 10000
REQUIRED_HEADERS = ("location", "item")


def detect_encoding(sample: bytes) -> Tuple[str, float]:
    """
    Rileva encoding del file provando: utf-8-sig → utf-8 → latin-1.

    Args:
        sample: Primi byte del file

    Returns:
        Tuple (encoding, confidence)
    """
    if sample.startswith(codecs.BOM_UTF8):
        return 'utf-8-sig', 1.0

    detected = chardet.detect(sample)
    confidence = detected.get('confidence') or 0.0

    for enc in ['utf-8', 'cp1252', 'latin-1']:
        try:
            sample.decode(enc)
        except UnicodeDecodeError as e:
            # Carattere multibyte troncato a fine campione: utf-8 resta valido
            if enc == 'utf-8' and e.start >= len(sample) - 3 and e.reason == 'unexpected end of data':
                return enc, confidence
            continue
        logger.debug(f"[CSV_READER] Encoding detection: {enc} (confidence={confidence:.2f})")
        return enc, confidence

    return 'latin-1', 0.0


def validate_header(header: List[str]) -> None:
    """Colonna 0 = location, colonna 1 = item (case-insensitive, spazi non ammessi)."""
    if len(header) < len(REQUIRED_HEADERS):
        raise FileFormatError(f"reference file contains wrong headers={header}")
    for expected, actual in zip(REQUIRED_HEADERS, header):
        if actual.lower() != expected:
            raise FileFormatError(f"reference file contains wrong headers={header}")


def iter_reference_rows(fp: TextIO) -> Iterator[ReferenceRow]:
    """
    Itera le righe dati del CSV dopo aver validato l'header.

    Raises:
        FileFormatError: Header mancante/errato, riga con numero colonne
            diverso dall'header o sintassi CSV non valida
    """
    reader = csv.reader(fp, strict=True)
    try:
        header = next(reader, None)
        if header is None:
            raise FileFormatError("reference file is empty, csv headers missing")
        validate_header(header)

        for row in reader:
            if not row:
                continue
            if len(row) != len(header):
                raise FileFormatError(
                    f"row at line {reader.line_num} has {len(row)} fields, expected {len(header)}"
                )
            yield ReferenceRow(location=row[0], expected_barcode=row[1], line_number=reader.line_num)
    except (csv.Error, UnicodeDecodeError) as e:
        raise FileFormatError(f"failed reading csv at line {reader.line_num}: {e}") from e


def open_reference_file(path: str) -> TextIO:
    """Apre il CSV con l'encoding rilevato."""
    with open(path, "rb") as raw:
        sample = raw.read(ENCODING_SAMPLE_BYTES)
    encoding, _ = detect_encoding(sample)
    return open(path, "r", encoding=encoding, newline="")
