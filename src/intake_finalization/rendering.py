"""Paginated PDF rendering of a completed intake record.

Rendering runs in two phases. ``DocumentRenderer.layout`` walks the record in
fixed section order and places measured blocks on A4 pages with a vertical
cursor: every block is measured first and a new page is started whenever the
block would cross the bottom margin. ``DocumentRenderer.render`` then paints
the finished layout with the ReportLab canvas. The layout phase is pure, so
the renderer holds no per-call state and can run on any worker thread.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from io import BytesIO
from pathlib import Path

from reportlab.lib import colors
from reportlab.lib.colors import Color
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas

from .errors import RenderingError
from .localization import BundledCatalog, Localizer, consent_key
from .schemas import ClinicSettings, ConsentItem, Gender, InsuranceType, PatientRecord
from .scoring import MAX_SCORE, RiskScore, RiskTier


PAGE_WIDTH = 595.2
PAGE_HEIGHT = 841.8
MARGIN = 40.0
CONTENT_WIDTH = PAGE_WIDTH - 2 * MARGIN

LINE_SPACING = 1.2
BLOCK_GAP = 5.0
LOGO_BOX = 50.0
SIGNATURE_MAX_WIDTH = 250.0
SIGNATURE_MAX_HEIGHT = 120.0
CONSENT_INDENT = 14.0

GLYPH_FONT = "ZapfDingbats"
CHECK_GLYPH = "4"
CROSS_GLYPH = "8"

HEADING_COLOR = Color(0.17, 0.37, 0.54)
MUTED_COLOR = colors.gray
DETAIL_COLOR = Color(0.33, 0.33, 0.33)
RULE_COLOR = colors.lightgrey

TIER_BADGE_FILL: dict[RiskTier, Color] = {
    RiskTier.LOW: Color(0.30, 0.69, 0.31),
    RiskTier.MODERATE: Color(1.00, 0.76, 0.03),
    RiskTier.ELEVATED: Color(1.00, 0.60, 0.00),
    RiskTier.HIGH: Color(0.96, 0.26, 0.21),
}

# Helvetica cannot draw these; only applied with the built-in fonts.
_WINANSI_REPLACEMENTS: dict[str, str] = {
    "‐": "-",
    "‑": "-",
    "–": "-",
    "—": "-",
    "‘": "'",
    "’": "'",
    "“": '"',
    "”": '"',
    "…": "...",
    "→": "->",
    " ": " ",
    " ": " ",
}


class Section(str, Enum):
    """Document sections in their fixed rendering order."""

    HEADER = "header"
    PERSONAL = "personal"
    MEDICATIONS = "medications"
    ALLERGIES = "allergies"
    CONDITIONS = "conditions"
    WOMENS_HEALTH = "womens_health"
    LIFESTYLE = "lifestyle"
    DENTAL = "dental"
    CONSENT = "consent"
    SIGNATURE = "signature"
    TIMESTAMP = "timestamp"


class BlockKind(str, Enum):
    TEXT = "text"
    RULE = "rule"
    IMAGE = "image"
    BADGE = "badge"
    CONSENT = "consent"


@dataclass(frozen=True)
class DocumentFonts:
    """Font names used for body, bold and italic text."""

    regular: str = "Helvetica"
    bold: str = "Helvetica-Bold"
    italic: str = "Helvetica-Oblique"
    builtin: bool = True

    @classmethod
    def from_ttf(cls, path: str | Path, name: str = "IntakeSans") -> DocumentFonts:
        """Register a TrueType font and use it for every text style.

        Needed for records whose consent texts are outside Latin-1.
        """

        if name not in pdfmetrics.getRegisteredFontNames():
            pdfmetrics.registerFont(TTFont(name, str(path)))
        return cls(regular=name, bold=name, italic=name, builtin=False)


@dataclass(frozen=True)
class PlacedBlock:
    """One measured block at its final position; ``top`` is measured from the page top."""

    kind: BlockKind
    section: Section
    x: float
    top: float
    width: float
    height: float
    lines: tuple[str, ...] = ()
    font: str = ""
    size: float = 0.0
    color: Color | None = None
    fill: Color | None = None
    glyph: str = ""
    image: bytes | None = None

    @property
    def text(self) -> str:
        return " ".join(self.lines)


@dataclass
class LayoutPage:
    blocks: list[PlacedBlock] = field(default_factory=list)


@dataclass
class DocumentLayout:
    """Pages of placed blocks, ready to paint."""

    pages: list[LayoutPage]
    title: str = ""
    author: str = ""

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def blocks(self) -> Iterator[tuple[int, PlacedBlock]]:
        for index, page in enumerate(self.pages):
            for block in page.blocks:
                yield index, block

    def sections(self) -> list[Section]:
        """Distinct sections in the order they first appear."""

        seen: list[Section] = []
        for _, block in self.blocks():
            if block.section not in seen:
                seen.append(block.section)
        return seen

    def text(self) -> str:
        return "\n".join(block.text for _, block in self.blocks() if block.lines)


@dataclass(frozen=True)
class _ImageInfo:
    data: bytes
    width: float
    height: float


def _probe_image(data: bytes | None) -> _ImageInfo | None:
    if not data:
        return None
    try:
        width, height = ImageReader(BytesIO(data)).getSize()
    except Exception:  # unreadable images are treated as absent
        return None
    if width <= 0 or height <= 0:
        return None
    return _ImageInfo(data=data, width=float(width), height=float(height))


class _LayoutBuilder:
    """Per-document cursor state; created for a single ``layout`` call."""

    def __init__(
        self,
        *,
        record: PatientRecord,
        clinic: ClinicSettings,
        risk: RiskScore,
        localizer: Localizer,
        fonts: DocumentFonts,
    ) -> None:
        self._record = record
        self._clinic = clinic
        self._risk = risk
        self._localizer = localizer
        self._fonts = fonts
        self._pages: list[LayoutPage] = []
        self._y = MARGIN
        self._section = Section.HEADER
        self._new_page()

    # cursor

    @property
    def _bottom(self) -> float:
        return PAGE_HEIGHT - MARGIN

    def _new_page(self) -> None:
        self._pages.append(LayoutPage())
        self._y = MARGIN

    def _ensure_room(self, needed: float) -> None:
        if self._y + needed > self._bottom:
            self._new_page()

    def _place(self, block: PlacedBlock) -> None:
        self._pages[-1].blocks.append(block)

    # primitives

    def _t(self, key: str, **args: object) -> str:
        return self._localizer.text(key, self._record.language, **args)

    def _long_date(self, value: date) -> str:
        return self._t("date.long", month=self._t(f"month.{value.month}"), day=value.day, year=value.year)

    def _medium_date(self, value: date) -> str:
        return self._t(
            "date.medium", month_abbr=self._t(f"month_abbr.{value.month}"), day=value.day, year=value.year
        )

    def _long_timestamp(self, value: datetime) -> str:
        return self._t("date.timestamp", date=self._long_date(value), time=f"{value:%H:%M}")

    def _clean(self, text: str) -> str:
        if not self._fonts.builtin:
            return text
        for char, replacement in _WINANSI_REPLACEMENTS.items():
            text = text.replace(char, replacement)
        try:
            text.encode("cp1252")
        except UnicodeEncodeError as exc:
            raise RenderingError(
                f"built-in fonts cannot draw {text[exc.start:exc.end]!r} for language "
                f"{self._record.language.value!r}; set INTAKE_FINALIZATION_DOCUMENT_FONT_PATH "
                "to a Unicode TrueType font"
            ) from exc
        return text

    def _text(
        self,
        text: str,
        *,
        font: str | None = None,
        size: float = 10,
        color: Color = colors.black,
        x: float = MARGIN,
        width: float = CONTENT_WIDTH,
    ) -> None:
        font = font or self._fonts.regular
        lines = simpleSplit(self._clean(text), font, size, width)
        if not lines:
            return
        self._flow(lines, kind=BlockKind.TEXT, font=font, size=size, color=color, x=x, width=width)

    def _flow(
        self,
        lines: list[str],
        *,
        kind: BlockKind,
        font: str,
        size: float,
        color: Color,
        x: float,
        width: float,
        glyph: str = "",
    ) -> None:
        """Place wrapped lines, continuing on new pages; only the first chunk carries ``glyph``."""

        leading = size * LINE_SPACING
        self._ensure_room(len(lines) * leading + BLOCK_GAP)
        while lines:
            room = int((self._bottom - self._y) // leading)
            if room <= 0:
                self._new_page()
                continue
            chunk, lines = lines[:room], lines[room:]
            self._place(
                PlacedBlock(
                    kind=kind,
                    section=self._section,
                    x=x,
                    top=self._y,
                    width=width,
                    height=len(chunk) * leading,
                    lines=tuple(chunk),
                    font=font,
                    size=size,
                    color=color,
                    glyph=glyph,
                )
            )
            glyph = ""
            self._y += len(chunk) * leading
            if lines:
                self._new_page()
        self._y += BLOCK_GAP

    def _section_header(self, section: Section, title: str) -> None:
        self._section = section
        self._y += 10
        self._ensure_room(30)
        self._text(title, font=self._fonts.bold, size=14, color=HEADING_COLOR)
        self._place(
            PlacedBlock(
                kind=BlockKind.RULE,
                section=section,
                x=MARGIN,
                top=self._y,
                width=CONTENT_WIDTH,
                height=0.5,
                color=RULE_COLOR,
            )
        )
        self._y += 8

    def _field(self, label_key: str, value: str) -> None:
        if not value:
            return
        self._text(f"{self._t(label_key)}: {value}")

    def _yes_no(self, label_key: str, value: bool, details: str | None = None) -> None:
        answer = self._t("answer.yes") if value else self._t("answer.no")
        self._text(f"{self._t(label_key)}: {answer}")
        if value and details:
            self._text(f"  » {details}", font=self._fonts.italic, size=9, color=DETAIL_COLOR)

    def _image(self, info: _ImageInfo, width: float, height: float, x: float = MARGIN) -> None:
        self._place(
            PlacedBlock(
                kind=BlockKind.IMAGE,
                section=self._section,
                x=x,
                top=self._y,
                width=width,
                height=height,
                image=info.data,
            )
        )

    # sections

    def build(self) -> DocumentLayout:
        self._header()
        self._personal()
        self._medications()
        self._allergies()
        self._conditions()
        if self._record.personal.gender is Gender.FEMALE:
            self._womens_health()
        self._lifestyle()
        self._dental()
        self._consents()
        self._signature()
        self._timestamp()
        return DocumentLayout(
            pages=self._pages,
            title=self._t("document.title"),
            author=self._clinic.clinic_name,
        )

    def _header(self) -> None:
        self._section = Section.HEADER
        clinic = self._clinic
        logo = _probe_image(clinic.logo_png)
        if logo is not None:
            scale = min(LOGO_BOX / logo.width, LOGO_BOX / logo.height)
            self._image(logo, logo.width * scale, logo.height * scale)
            info_x = MARGIN + LOGO_BOX + 10
            info_width = CONTENT_WIDTH - LOGO_BOX - 10
            saved_y = self._y
            self._text(clinic.clinic_name, font=self._fonts.bold, size=16, x=info_x, width=info_width)
            for line in (clinic.clinic_subtitle, clinic.full_address, clinic.website):
                if line:
                    size = 10 if line == clinic.clinic_subtitle else 9
                    self._text(line, size=size, color=MUTED_COLOR, x=info_x, width=info_width)
            self._y = max(self._y, saved_y + LOGO_BOX + 10)
        else:
            self._text(clinic.clinic_name, font=self._fonts.bold, size=18)
            if clinic.clinic_subtitle:
                self._text(clinic.clinic_subtitle, size=11, color=MUTED_COLOR)

        self._y += 5
        self._text(self._t("document.title"), font=self._fonts.bold, size=16)
        self._field("field.patient_number", self._record.patient_number)
        self._field("field.date", self._long_date(self._record.submitted_at))

    def _personal(self) -> None:
        self._section_header(Section.PERSONAL, self._t("section.personal"))
        info = self._record.personal
        self._field("field.salutation", info.title.value)
        self._field("field.name", info.full_name)
        if info.date_of_birth is not None:
            self._field("field.date_of_birth", self._medium_date(info.date_of_birth))
        self._field("field.gender", info.gender.value)
        address = ", ".join(part for part in (info.street, info.postal_code, info.city, info.country) if part)
        self._field("field.address", address)
        self._field("field.phone", info.phone)
        self._field("field.email", info.email)
        insurance = " - ".join(part for part in (info.insurance_type.value, info.insurance_name) if part)
        self._field("field.insurance", insurance)
        number_label = (
            "field.insurance_number_public"
            if info.insurance_type is InsuranceType.PUBLIC
            else "field.insurance_number"
        )
        self._field(number_label, info.insurance_number)
        self._field("field.profession", info.profession)
        if info.emergency_contact_name:
            contact = info.emergency_contact_name
            if info.emergency_contact_phone:
                contact = f"{contact} ({info.emergency_contact_phone})"
            self._field("field.emergency_contact", contact)

    def _medications(self) -> None:
        self._section_header(Section.MEDICATIONS, self._t("section.medications"))
        med = self._record.medication
        treatment = " - ".join(part for part in (med.doctor_name, med.treatment_reason) if part)
        self._yes_no("field.under_treatment", med.under_treatment, treatment)
        self._yes_no("field.taking_medications", med.taking_medications, med.medications_list)
        if med.taking_blood_thinners:
            self._yes_no("field.blood_thinners", True, med.blood_thinner.value)

    def _allergies(self) -> None:
        self._section_header(Section.ALLERGIES, self._t("section.allergies"))
        allergy = self._record.allergies
        if not allergy.has_allergies:
            self._yes_no("field.allergies", False)
            return
        types = ", ".join(item.value for item in allergy.allergy_types)
        self._yes_no("field.allergies", True, types)
        if allergy.other_allergy_text:
            self._text(
                f"  {self._t('field.other_allergy')}: {allergy.other_allergy_text}",
                font=self._fonts.italic,
                size=9,
            )

    def _conditions(self) -> None:
        self._section_header(Section.CONDITIONS, self._t("section.conditions"))
        present = self._record.conditions.present()
        for condition, entry in present:
            detail = entry.details
            if entry.sub_options:
                sub = ", ".join(entry.sub_options)
                detail = f"{detail}; {sub}" if detail else sub
            self._yes_no(f"condition.{condition.value}", True, detail or None)
        if not present:
            self._text(self._t("conditions.none"), font=self._fonts.italic, size=10, color=MUTED_COLOR)

    def _womens_health(self) -> None:
        self._section_header(Section.WOMENS_HEALTH, self._t("section.womens_health"))
        info = self._record.womens_health
        self._yes_no("field.pregnant", info.pregnant, info.trimester.value if info.trimester else None)
        self._yes_no("field.breastfeeding", info.breastfeeding)
        self._yes_no("field.contraceptives", info.taking_contraceptives, info.contraceptive_type)

    def _lifestyle(self) -> None:
        self._section_header(Section.LIFESTYLE, self._t("section.lifestyle"))
        info = self._record.lifestyle
        amount = self._t("field.smoking_amount", amount=info.smoking_amount.value) if info.smoking_amount else None
        self._yes_no("field.smoker", info.smoker, amount)
        self._field("field.alcohol", info.alcohol.value)
        self._yes_no("field.bruxism", info.bruxism, self._t("lifestyle.nightguard") if info.nightguard else None)

    def _dental(self) -> None:
        self._section_header(Section.DENTAL, self._t("section.dental"))
        dental = self._record.dental
        if dental.visit_reason is not None:
            self._field("field.visit_reason", dental.visit_reason.value)
            if dental.is_aesthetic and dental.aesthetic_sub_type is not None:
                self._field("field.aesthetic_type", dental.aesthetic_sub_type.value)
        if dental.last_dental_visit is not None:
            self._field("field.last_visit", dental.last_dental_visit.value)
        self._yes_no("field.bleeding_gums", dental.bleeding_gums)
        symptoms = ", ".join(symptom.value for symptom in dental.tmj_symptoms)
        self._yes_no("field.tmj", dental.has_tmj, symptoms or None)
        self._yes_no("field.dental_surgery", dental.had_dental_surgery)
        self._yes_no(
            "field.anesthesia_complications",
            dental.had_anesthesia_complications,
            dental.anesthesia_complication_details,
        )
        self._field("field.anxiety", dental.anxiety_level.value)
        if dental.is_aesthetic:
            self._risk_badge()

    def _risk_badge(self) -> None:
        tier = self._risk.tier
        text = self._clean(
            self._t("badge.risk", label=tier.label, score=self._risk.score, max_score=MAX_SCORE)
        )
        font = self._fonts.bold
        size = 11.0
        width = pdfmetrics.stringWidth(text, font, size) + 16
        height = size * LINE_SPACING + 8
        self._y += 5
        self._ensure_room(height + 10)
        self._place(
            PlacedBlock(
                kind=BlockKind.BADGE,
                section=self._section,
                x=MARGIN,
                top=self._y,
                width=width,
                height=height,
                lines=(text,),
                font=font,
                size=size,
                color=colors.black if tier is RiskTier.MODERATE else colors.white,
                fill=TIER_BADGE_FILL[tier],
            )
        )
        self._y += height + 10

    def _consents(self) -> None:
        self._section_header(Section.CONSENT, self._t("consent.title"))
        self._text(self._t("consent.privacyTitle"), font=self._fonts.bold, size=10)
        self._text(self._t("consent.privacyNotice"), size=8, color=DETAIL_COLOR)
        self._y += 5
        consents = self._record.consents
        for item in ConsentItem:
            args = {"fee": self._clinic.missed_appointment_fee} if item is ConsentItem.MISSED_APPOINTMENT else {}
            self._consent_line(self._t(consent_key(item.value), **args), consents.granted(item))

    def _consent_line(self, text: str, granted: bool) -> None:
        size = 9.0
        lines = simpleSplit(self._clean(text), self._fonts.regular, size, CONTENT_WIDTH - CONSENT_INDENT)
        self._flow(
            lines or [""],
            kind=BlockKind.CONSENT,
            font=self._fonts.regular,
            size=size,
            color=colors.black,
            x=MARGIN,
            width=CONTENT_WIDTH,
            glyph=CHECK_GLYPH if granted else CROSS_GLYPH,
        )

    def _signature(self) -> None:
        self._section = Section.SIGNATURE
        self._y += 10
        signature = _probe_image(self._record.signature_png)
        if signature is None:
            return
        aspect = signature.width / max(signature.height, 1.0)
        width = min(SIGNATURE_MAX_WIDTH, SIGNATURE_MAX_HEIGHT * aspect)
        height = width / aspect
        self._ensure_room(height + 30)
        self._text(self._t("signature.label"), font=self._fonts.bold, size=10)
        self._ensure_room(height)
        self._image(signature, width, height)
        self._y += height + 10

    def _timestamp(self) -> None:
        self._section = Section.TIMESTAMP
        self._text(f"{self._t('field.date')}: {self._long_timestamp(self._record.submitted_at)}", size=9)


class DocumentRenderer:
    """Turns an intake record into PDF bytes."""

    def __init__(self, *, localizer: Localizer | None = None, fonts: DocumentFonts | None = None) -> None:
        self._localizer = localizer or BundledCatalog()
        self._fonts = fonts or DocumentFonts()

    def layout(self, record: PatientRecord, clinic: ClinicSettings, risk: RiskScore) -> DocumentLayout:
        builder = _LayoutBuilder(
            record=record,
            clinic=clinic,
            risk=risk,
            localizer=self._localizer,
            fonts=self._fonts,
        )
        return builder.build()

    def render(self, record: PatientRecord, clinic: ClinicSettings, risk: RiskScore) -> bytes:
        try:
            return self.paint(self.layout(record, clinic, risk))
        except RenderingError:
            raise
        except Exception as exc:
            raise RenderingError(f"failed to render intake document: {exc}") from exc

    def paint(self, layout: DocumentLayout) -> bytes:
        buffer = BytesIO()
        pdf = canvas.Canvas(buffer, pagesize=(PAGE_WIDTH, PAGE_HEIGHT))
        pdf.setTitle(layout.title)
        pdf.setAuthor(layout.author)
        for page in layout.pages:
            for block in page.blocks:
                self._paint_block(pdf, block)
            pdf.showPage()
        pdf.save()
        return buffer.getvalue()

    @staticmethod
    def _paint_block(pdf: canvas.Canvas, block: PlacedBlock) -> None:
        bottom = PAGE_HEIGHT - block.top - block.height
        if block.kind is BlockKind.RULE:
            pdf.setStrokeColor(block.color or RULE_COLOR)
            pdf.setLineWidth(block.height)
            pdf.line(block.x, PAGE_HEIGHT - block.top, block.x + block.width, PAGE_HEIGHT - block.top)
        elif block.kind is BlockKind.IMAGE:
            pdf.drawImage(
                ImageReader(BytesIO(block.image or b"")),
                block.x,
                bottom,
                width=block.width,
                height=block.height,
                mask="auto",
            )
        elif block.kind is BlockKind.BADGE:
            pdf.setFillColor(block.fill or colors.gray)
            pdf.roundRect(block.x, bottom, block.width, block.height, 6, stroke=0, fill=1)
            pdf.setFillColor(block.color or colors.white)
            pdf.setFont(block.font, block.size)
            pdf.drawString(block.x + 8, PAGE_HEIGHT - block.top - 4 - block.size, block.lines[0])
        else:
            leading = block.size * LINE_SPACING
            text_x = block.x
            pdf.setFillColor(block.color or colors.black)
            if block.kind is BlockKind.CONSENT:
                if block.glyph:
                    pdf.setFont(GLYPH_FONT, block.size)
                    pdf.drawString(block.x, PAGE_HEIGHT - block.top - block.size, block.glyph)
                text_x = block.x + CONSENT_INDENT
            pdf.setFont(block.font, block.size)
            for index, line in enumerate(block.lines):
                pdf.drawString(text_x, PAGE_HEIGHT - block.top - index * leading - block.size, line)
