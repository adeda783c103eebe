# services/documents/models.py
from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Union


class DocCategory(str, Enum):
    ADMINISTRATIVA = "Administrativa"
    OBRA = "Documentación de Obra"
    TRABAJADORES = "Documentación de Trabajadores"
    RECONOCIMIENTOS = "Reconocimientos Médicos"
    SUBCONTRATAS = "Documentación Subcontratas"
    FORMACION = "Formación de Trabajadores"
    CONTRATOS = "Contratos de Trabajo"
    SAE = "Documentación SAE"

    @classmethod
    def parse(cls, value: Any) -> Optional["DocCategory"]:
        """Map a raw label onto the closed set; anything else is None."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        v = value.strip()
        for c in cls:
            if c.value == v:
                return c
        return None


DEFAULT_CATEGORY = DocCategory.OBRA

# Order in which categories are listed to the user.
CATEGORY_DISPLAY_ORDER = (
    DocCategory.CONTRATOS,
    DocCategory.SAE,
    DocCategory.ADMINISTRATIVA,
    DocCategory.OBRA,
    DocCategory.SUBCONTRATAS,
    DocCategory.TRABAJADORES,
    DocCategory.FORMACION,
    DocCategory.RECONOCIMIENTOS,
)

SIGNABLE_CATEGORIES = frozenset({DocCategory.CONTRATOS})


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """
    Lenient date parser for stored date strings.
    Accepts 'YYYY-MM-DD' and full ISO datetimes; returns None when unparseable.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    v = value.strip()
    try:
        return date.fromisoformat(v[:10])
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(v.replace("Z", "+00:00")).date()
    except ValueError:
        return None


@dataclass(frozen=True)
class Bitmap:
    """A re-encoded JPEG held as a data URI."""

    data_uri: str
    width: int
    height: int

    @property
    def payload(self) -> str:
        # base64 body without the "data:image/jpeg;base64," prefix
        return self.data_uri.split(",", 1)[1] if "," in self.data_uri else self.data_uri


@dataclass(frozen=True)
class ClassificationResult:
    category: Optional[DocCategory]  # None => classifier gave no usable category
    summary: str
    expiry_date: Optional[str]
    worker_name: Optional[str]
    is_valid: bool


@dataclass(frozen=True, kw_only=True)
class _DocumentBase:
    id: str
    name: str
    category: DocCategory
    upload_date: str
    expiry_date: Optional[str] = None
    summary: Optional[str] = None
    worker_name: Optional[str] = None
    location: Optional[str] = None
    quincena: Optional[str] = None
    is_valid: bool = True

    record_type: ClassVar[str]

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["category"] = self.category.value
        out["record_type"] = self.record_type
        return out


@dataclass(frozen=True, kw_only=True)
class FileDocument(_DocumentBase):
    image_url: str
    thumbnail_url: str
    file_url: str  # blob handle of the rendered PDF
    mime_type: str = "application/pdf"
    is_signed: bool = False
    signature_url: Optional[str] = None

    record_type: ClassVar[str] = "file"

    def __post_init__(self) -> None:
        if self.is_signed and not self.signature_url:
            raise ValueError("signed document requires a signature reference")
        if not (self.image_url and self.thumbnail_url and self.file_url):
            raise ValueError("file document requires archival, thumbnail and PDF payloads")


@dataclass(frozen=True, kw_only=True)
class AppointmentDocument(_DocumentBase):
    record_type: ClassVar[str] = "appointment"


DocumentRecord = Union[FileDocument, AppointmentDocument]


def is_signable(doc: DocumentRecord) -> bool:
    return isinstance(doc, FileDocument) and doc.category in SIGNABLE_CATEGORIES


@dataclass(frozen=True)
class Appointment:
    date: str
    time: Optional[str] = None
    location: str = ""


@dataclass(frozen=True)
class Worker:
    id: str
    first_name: str
    last_name: str
    quincena: str = ""
    has_prl_20h: bool = False
    prl_appointment: Optional[Appointment] = None
    medical_appointment: Optional[Appointment] = None
    dni: str = ""
    offer_number: str = ""
    birth_date: str = ""
    contract_start: str = ""
    contract_end: str = ""
    phone: str = ""
    shoe_size: int = 42

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass
class PendingIntakeDraft:
    """
    Review-time state between upload and save/cancel.
    The editable fields are pre-populated from the classification and the
    intake's overrides; the payload fields are fixed.
    """

    id: str
    archival: Bitmap
    thumbnail: Bitmap
    pdf_url: str
    original_name: str
    analysis: ClassificationResult
    name: str
    category: DocCategory
    worker_name: str = ""
    expiry_date: str = ""
    quincena: str = ""


class ReminderType(str, Enum):
    TRAINING = "PRL"
    MEDICAL = "MED"


@dataclass(frozen=True)
class Reminder:
    id: str
    type: ReminderType
    worker: str
    date: str
    time: Optional[str] = None
    location: Optional[str] = None
