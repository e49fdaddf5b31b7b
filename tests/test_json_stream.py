"""
Test lettura incrementale array JSON.
"""
import io

import pytest

from core.errors import FileFormatError
from pipelines.json_stream import JsonArrayStream


def read_all(text, chunk_size=64 * 1024, **kwargs):
    stream = JsonArrayStream(io.StringIO(text), chunk_size=chunk_size, **kwargs)
    stream.read_array_start()
    items = []
    while stream.has_more():
        items.append(stream.decode())
    stream.read_array_end()
    return items


class TestJsonArrayStream:
    """Test documenti validi, anche con blocchi piccoli."""

    @pytest.mark.parametrize("chunk_size", [1, 2, 3, 7, 64 * 1024])
    def test_elements_across_chunks(self, chunk_size):
        text = '[{"name": "L1", "detected_barcodes": ["B1"]}, 12345, true, null, "x,]"]'
        assert read_all(text, chunk_size) == [
            {"name": "L1", "detected_barcodes": ["B1"]}, 12345, True, None, "x,]"
        ]

    def test_number_split_at_chunk_boundary(self):
        assert read_all("[12345,678]", chunk_size=2) == [12345, 678]

    @pytest.mark.parametrize("text", ["[]", "  [ \n ]  ", "[\n]\n"])
    def test_empty_array(self, text):
        assert read_all(text, chunk_size=1) == []

    def test_count(self):
        stream = JsonArrayStream(io.StringIO("[1, 2, 3]"))
        stream.read_array_start()
        while stream.has_more():
            stream.decode()
        assert stream.count == 3


class TestJsonArrayStreamErrors:
    """Test errori di formato: tutti FileFormatError."""

    @pytest.mark.parametrize("text", ["", "   ", '{"name": "L1"}', "1", "null"])
    def test_not_an_array(self, text):
        stream = JsonArrayStream(io.StringIO(text))
        with pytest.raises(FileFormatError):
            stream.read_array_start()

    @pytest.mark.parametrize("text", [
        "[1,]",          # virgola finale
        "[1, 2",         # ']' mancante
        "[1 2]",         # virgola mancante
        '[{"name": }]',  # elemento malformato
        "[1] x",         # dati dopo l'array
        "[1]]",
        "[",
    ])
    def test_malformed(self, text):
        with pytest.raises(FileFormatError):
            read_all(text, chunk_size=2)

    def test_element_too_large(self):
        text = '["' + "a" * 100 + '"]'
        with pytest.raises(FileFormatError):
            read_all(text, chunk_size=4, max_element_chars=10)

    def test_elements_before_error_are_returned(self):
        stream = JsonArrayStream(io.StringIO('[1, 2, {"bad" 3}]'))
        stream.read_array_start()
        assert stream.has_more()
        assert stream.decode() == 1
        assert stream.has_more()
        assert stream.decode() == 2
        assert stream.has_more()
        with pytest.raises(FileFormatError):
            stream.decode()
