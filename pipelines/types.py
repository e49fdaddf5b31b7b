"""
Tipi di input delle pipeline.

ScanItem valida un elemento del file scan JSON; ReferenceRow è una riga dati
del CSV di riferimento.
"""
from dataclasses import dataclass
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ScanItem(BaseModel):
    """
    Elemento del file scan: {name, scanned, occupied, detected_barcodes}.

    Tipi stretti (nessuna coercizione "true" → True); campi extra ignorati.
    """
    model_config = ConfigDict(strict=True, extra="ignore")

    name: str = Field(..., description="Location scansionata")
    scanned: bool = Field(default=False)
    occupied: bool = Field(default=False)
    detected_barcodes: Optional[List[str]] = Field(default_factory=list)

    @field_validator('detected_barcodes')
    @classmethod
    def validate_barcodes(cls, v: Optional[List[str]]) -> List[str]:
        """null equivale a nessun barcode rilevato."""
        return list(v) if v is not None else []


@dataclass
class ReferenceRow:
    location: str
    expected_barcode: str
    line_number: int

    @property
    def expected_barcodes(self) -> List[str]:
        """[] se la cella è vuota, altrimenti un solo barcode."""
        return [self.expected_barcode] if self.expected_barcode != "" else []
