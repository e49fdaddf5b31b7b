"""
Lettura incrementale di un array JSON di primo livello.

Il file viene letto a blocchi e gli elementi decodificati uno alla volta con
``json.JSONDecoder.raw_decode``: in memoria restano solo il blocco corrente e
l'elemento in decodifica.
"""
import json
import logging
from typing import Any, Optional, TextIO

from core.errors import FileFormatError

logger = logging.getLogger(__name__)

_WHITESPACE = " \t\n\r"

DEFAULT_CHUNK_SIZE = 64 * 1024
DEFAULT_MAX_ELEMENT_CHARS = 4 * 1024 * 1024


class JsonArrayStream:
    """
    Lettore token-per-token di ``[elem, elem, ...]``.

    Uso:
        stream.read_array_start()
        while stream.has_more():
            item = stream.decode()
        stream.read_array_end()
    """

    def __init__(
        self,
        fp: TextIO,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_element_chars: int = DEFAULT_MAX_ELEMENT_CHARS
    ):
        self._fp = fp
        self._chunk_size = chunk_size
        self._max_element_chars = max_element_chars
        self._decoder = json.JSONDecoder()
        self._buf = ""
        self._pos = 0
        self._eof = False
        self._count = 0

    @property
    def count(self) -> int:
        """Elementi decodificati finora."""
        return self._count

    def _fill(self) -> bool:
        """Legge un altro blocco, scartando la parte già consumata del buffer."""
        if self._eof:
            return False
        chunk = self._fp.read(self._chunk_size)
        if not chunk:
            self._eof = True
            return False
        self._buf = self._buf[self._pos:] + chunk
        self._pos = 0
        return True

    def _peek(self) -> Optional[str]:
        """Primo carattere non-whitespace, None a fine file."""
        while True:
            while self._pos < len(self._buf) and self._buf[self._pos] in _WHITESPACE:
                self._pos += 1
            if self._pos < len(self._buf):
                return self._buf[self._pos]
            if not self._fill():
                return None

    def read_array_start(self) -> None:
        char = self._peek()
        if char != "[":
            raise FileFormatError(f"expected '[' at start of document, found {char!r}")
        self._pos += 1

    def has_more(self) -> bool:
        """True se segue un altro elemento; consuma il separatore ','."""
        char = self._peek()
        if char is None:
            raise FileFormatError(f"unexpected end of document after {self._count} elements")

        if self._count == 0:
            return char != "]"

        if char == "]":
            return False
        if char != ",":
            raise FileFormatError(f"expected ',' or ']' after element {self._count}, found {char!r}")

        self._pos += 1
        char = self._peek()
        if char is None:
            raise FileFormatError(f"unexpected end of document after {self._count} elements")
        if char == "]":
            raise FileFormatError(f"trailing comma after element {self._count}")
        return True

    def decode(self) -> Any:
        """Decodifica il prossimo elemento."""
        if self._peek() is None:
            raise FileFormatError(f"unexpected end of document after {self._count} elements")

        while True:
            try:
                value, end = self._decoder.raw_decode(self._buf, self._pos)
            except json.JSONDecodeError as e:
                # Elemento forse troncato a fine blocco: riprova con più dati
                if len(self._buf) - self._pos < self._max_element_chars and self._fill():
                    continue
                raise FileFormatError(f"malformed element {self._count + 1}: {e.msg}") from e

            # Un numero a fine buffer potrebbe continuare nel blocco successivo
            if end == len(self._buf) and not self._eof and self._fill():
                continue

            self._pos = end
            self._count += 1
            return value

    def read_array_end(self) -> None:
        char = self._peek()
        if char != "]":
            raise FileFormatError(f"expected ']' at end of array, found {char!r}")
        self._pos += 1

        trailing = self._peek()
        if trailing is not None:
            raise FileFormatError(f"unexpected data after closing ']': {trailing!r}")
