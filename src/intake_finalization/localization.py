"""Label and legal text catalogs keyed by the record's stored language."""

from __future__ import annotations

from typing import Any, Protocol

from .schemas import Language


LEGAL_PREFIX = "consent."


class Localizer(Protocol):
    """Resolves display strings for a language."""

    def text(self, key: str, language: Language, **args: Any) -> str: ...


def _month_labels(names: tuple[str, ...], abbreviations: tuple[str, ...]) -> dict[str, str]:
    labels = {f"month.{number}": name for number, name in enumerate(names, start=1)}
    labels.update({f"month_abbr.{number}": name for number, name in enumerate(abbreviations, start=1)})
    return labels


_EN_LABELS: dict[str, str] = {
    "document.title": "Patient History Form",
    "field.patient_number": "Patient No.",
    "field.date": "Date",
    "section.personal": "Personal Information",
    "field.salutation": "Salutation",
    "field.name": "Name",
    "field.date_of_birth": "Date of Birth",
    "field.gender": "Gender",
    "field.address": "Address",
    "field.phone": "Phone",
    "field.email": "Email",
    "field.insurance": "Insurance",
    "field.insurance_number_public": "SV-Nr.",
    "field.insurance_number": "Policy No.",
    "field.profession": "Profession",
    "field.emergency_contact": "Emergency Contact",
    "section.medications": "Medications",
    "field.under_treatment": "Under medical treatment",
    "field.taking_medications": "Taking medications",
    "field.blood_thinners": "Blood thinners",
    "section.allergies": "Allergies",
    "field.allergies": "Allergies",
    "field.other_allergy": "Other",
    "section.conditions": "Medical Conditions",
    "conditions.none": "No medical conditions reported",
    "condition.cardiovascular": "Cardiovascular",
    "condition.pacemaker": "Pacemaker/Defibrillator",
    "condition.blood_disorders": "Blood disorders",
    "condition.diabetes": "Diabetes",
    "condition.respiratory": "Respiratory",
    "condition.epilepsy": "Epilepsy",
    "condition.infectious_diseases": "Infectious diseases",
    "condition.liver_disease": "Liver disease",
    "condition.kidney_disease": "Kidney disease",
    "condition.thyroid_disorders": "Thyroid disorders",
    "condition.osteoporosis": "Osteoporosis",
    "condition.autoimmune": "Autoimmune",
    "condition.head_neck_radiation": "Head/neck radiation",
    "condition.chemotherapy": "Chemotherapy",
    "condition.other": "Other",
    "section.womens_health": "Women's Health",
    "field.pregnant": "Pregnant",
    "field.breastfeeding": "Breastfeeding",
    "field.contraceptives": "Oral contraceptives",
    "section.lifestyle": "Lifestyle",
    "field.smoker": "Smoker",
    "field.smoking_amount": "{amount} per day",
    "field.alcohol": "Alcohol",
    "field.bruxism": "Bruxism",
    "lifestyle.nightguard": "Wears nightguard",
    "section.dental": "Dental History",
    "field.visit_reason": "Visit reason",
    "field.aesthetic_type": "Aesthetic type",
    "field.last_visit": "Last dental visit",
    "field.bleeding_gums": "Bleeding gums",
    "field.tmj": "TMJ issues",
    "field.dental_surgery": "Prior dental surgery",
    "field.anesthesia_complications": "Anesthesia complications",
    "field.anxiety": "Anxiety level",
    "badge.risk": "BDD Risk: {label} ({score}/{max_score})",
    "answer.yes": "Yes",
    "answer.no": "No",
    "signature.label": "Patient Signature:",
    "date.long": "{month} {day}, {year}",
    "date.medium": "{month_abbr} {day}, {year}",
    "date.timestamp": "{date} at {time}",
    **_month_labels(
        ("January", "February", "March", "April", "May", "June",
         "July", "August", "September", "October", "November", "December"),
        ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"),
    ),
}

_DE_LABELS: dict[str, str] = {
    "document.title": "Anamnesebogen",
    "field.patient_number": "Patienten-Nr.",
    "field.date": "Datum",
    "section.personal": "Persönliche Angaben",
    "field.salutation": "Anrede",
    "field.name": "Name",
    "field.date_of_birth": "Geburtsdatum",
    "field.gender": "Geschlecht",
    "field.address": "Adresse",
    "field.phone": "Telefon",
    "field.email": "E-Mail",
    "field.insurance": "Versicherung",
    "field.insurance_number_public": "SV-Nr.",
    "field.insurance_number": "Polizzen-Nr.",
    "field.profession": "Beruf",
    "field.emergency_contact": "Notfallkontakt",
    "section.medications": "Medikamente",
    "field.under_treatment": "In ärztlicher Behandlung",
    "field.taking_medications": "Nimmt Medikamente",
    "field.blood_thinners": "Blutverdünner",
    "section.allergies": "Allergien",
    "field.allergies": "Allergien",
    "field.other_allergy": "Sonstige",
    "section.conditions": "Erkrankungen",
    "conditions.none": "Keine Erkrankungen angegeben",
    "condition.cardiovascular": "Herz-Kreislauf",
    "condition.pacemaker": "Herzschrittmacher/Defibrillator",
    "condition.blood_disorders": "Blutgerinnungsstörungen",
    "condition.diabetes": "Diabetes",
    "condition.respiratory": "Atemwege",
    "condition.epilepsy": "Epilepsie",
    "condition.infectious_diseases": "Infektionskrankheiten",
    "condition.liver_disease": "Lebererkrankung",
    "condition.kidney_disease": "Nierenerkrankung",
    "condition.thyroid_disorders": "Schilddrüse",
    "condition.osteoporosis": "Osteoporose",
    "condition.autoimmune": "Autoimmunerkrankung",
    "condition.head_neck_radiation": "Bestrahlung Kopf/Hals",
    "condition.chemotherapy": "Chemotherapie",
    "condition.other": "Sonstige",
    "section.womens_health": "Frauengesundheit",
    "field.pregnant": "Schwanger",
    "field.breastfeeding": "Stillend",
    "field.contraceptives": "Orale Verhütungsmittel",
    "section.lifestyle": "Lebensstil",
    "field.smoker": "Raucher/in",
    "field.smoking_amount": "{amount} pro Tag",
    "field.alcohol": "Alkohol",
    "field.bruxism": "Zähneknirschen",
    "lifestyle.nightguard": "Trägt Aufbissschiene",
    "section.dental": "Zahnärztliche Vorgeschichte",
    "field.visit_reason": "Grund des Besuchs",
    "field.aesthetic_type": "Ästhetische Behandlung",
    "field.last_visit": "Letzter Zahnarztbesuch",
    "field.bleeding_gums": "Zahnfleischbluten",
    "field.tmj": "Kiefergelenksbeschwerden",
    "field.dental_surgery": "Frühere zahnärztliche Operation",
    "field.anesthesia_complications": "Komplikationen bei Betäubung",
    "field.anxiety": "Angstniveau",
    "badge.risk": "BDD-Risiko: {label} ({score}/{max_score})",
    "answer.yes": "Ja",
    "answer.no": "Nein",
    "signature.label": "Unterschrift Patient/in:",
    "date.long": "{day}. {month} {year}",
    "date.medium": "{day}. {month_abbr} {year}",
    "date.timestamp": "{date} um {time}",
    **_month_labels(
        ("Januar", "Februar", "März", "April", "Mai", "Juni",
         "Juli", "August", "September", "Oktober", "November", "Dezember"),
        ("Jan.", "Feb.", "März", "Apr.", "Mai", "Juni", "Juli", "Aug.", "Sep.", "Okt.", "Nov.", "Dez."),
    ),
}

_EN_CONSENT: dict[str, str] = {
    "consent.title": "Consent & Signature",
    "consent.privacyTitle": "Privacy Notice",
    "consent.privacyNotice": (
        "The personal and health data you provide on this form are processed by the clinic "
        "for the purpose of your dental treatment, documentation and billing in accordance with "
        "Art. 6(1)(b) and Art. 9(2)(h) GDPR. Your data are stored for the statutory retention "
        "period and are only disclosed to third parties (e.g. laboratories, insurers) where this is "
        "necessary for your treatment or required by law.\n"
        "You have the right to access, rectify, erase and restrict the processing of your data, "
        "the right to data portability and the right to lodge a complaint with the data protection "
        "authority. Consents given below can be withdrawn at any time with effect for the future."
    ),
    "consent.gdpr": (
        "I consent to the processing of my personal and health data as described in the "
        "privacy notice."
    ),
    "consent.driving": (
        "I acknowledge that after treatment with local anesthesia or sedation my ability to drive "
        "and operate machinery may be impaired."
    ),
    "consent.missedAppointment": (
        "I agree that appointments not cancelled at least 24 hours in advance may be charged "
        "at EUR {fee}."
    ),
    "consent.photosInternal": (
        "I consent to clinical photographs and X-rays being taken for documentation within the clinic."
    ),
    "consent.photosResearch": (
        "I consent to anonymized clinical photographs being used for training and scientific purposes."
    ),
    "consent.photosMarketing": (
        "I consent to clinical photographs being used for the clinic's website and social media."
    ),
}

_DE_CONSENT: dict[str, str] = {
    "consent.title": "Einwilligung & Unterschrift",
    "consent.privacyTitle": "Datenschutzhinweis",
    "consent.privacyNotice": (
        "Die auf diesem Bogen angegebenen personenbezogenen Daten und Gesundheitsdaten werden von der "
        "Ordination zum Zweck Ihrer zahnärztlichen Behandlung, Dokumentation und Abrechnung gemäß "
        "Art. 6 Abs. 1 lit. b und Art. 9 Abs. 2 lit. h DSGVO verarbeitet. Ihre Daten werden für die "
        "gesetzliche Aufbewahrungsfrist gespeichert und nur dann an Dritte (z. B. Labore, "
        "Versicherungen) weitergegeben, wenn dies für Ihre Behandlung erforderlich oder gesetzlich "
        "vorgeschrieben ist.\n"
        "Sie haben das Recht auf Auskunft, Berichtigung, Löschung und Einschränkung der Verarbeitung, "
        "das Recht auf Datenübertragbarkeit sowie das Recht auf Beschwerde bei der "
        "Datenschutzbehörde. Die unten erteilten Einwilligungen können jederzeit mit Wirkung für die "
        "Zukunft widerrufen werden."
    ),
    "consent.gdpr": (
        "Ich willige in die Verarbeitung meiner personenbezogenen Daten und Gesundheitsdaten gemäß "
        "dem Datenschutzhinweis ein."
    ),
    "consent.driving": (
        "Ich nehme zur Kenntnis, dass nach einer Behandlung mit örtlicher Betäubung oder Sedierung "
        "meine Fahrtüchtigkeit und die Fähigkeit, Maschinen zu bedienen, eingeschränkt sein können."
    ),
    "consent.missedAppointment": (
        "Ich bin einverstanden, dass nicht mindestens 24 Stunden vorher abgesagte Termine mit "
        "EUR {fee} verrechnet werden können."
    ),
    "consent.photosInternal": (
        "Ich willige ein, dass klinische Fotos und Röntgenbilder zur Dokumentation innerhalb der "
        "Ordination angefertigt werden."
    ),
    "consent.photosResearch": (
        "Ich willige ein, dass anonymisierte klinische Fotos für Fortbildungs- und "
        "Forschungszwecke verwendet werden."
    ),
    "consent.photosMarketing": (
        "Ich willige ein, dass klinische Fotos für die Website und die sozialen Medien der "
        "Ordination verwendet werden."
    ),
}

_RU_CONSENT: dict[str, str] = {
    "consent.title": "Согласие и подпись",
    "consent.privacyTitle": "Уведомление о конфиденциальности",
    "consent.privacyNotice": (
        "Персональные данные и данные о здоровье, указанные в этой анкете, обрабатываются клиникой "
        "в целях стоматологического лечения, ведения документации и расчётов в соответствии со "
        "ст. 6(1)(b) и ст. 9(2)(h) GDPR. Данные хранятся в течение установленного законом срока и "
        "передаются третьим лицам (например, лабораториям, страховщикам) только если это необходимо "
        "для лечения или требуется по закону.\n"
        "Вы имеете право на доступ к своим данным, их исправление, удаление и ограничение обработки, "
        "право на переносимость данных и право подать жалобу в орган по защите данных. Согласия, "
        "данные ниже, могут быть отозваны в любое время с действием на будущее."
    ),
    "consent.gdpr": (
        "Я согласен(на) на обработку моих персональных данных и данных о здоровье в соответствии с "
        "уведомлением о конфиденциальности."
    ),
    "consent.driving": (
        "Я принимаю к сведению, что после лечения под местной анестезией или седацией моя "
        "способность управлять транспортным средством и механизмами может быть ограничена."
    ),
    "consent.missedAppointment": (
        "Я согласен(на), что за приём, не отменённый как минимум за 24 часа, может быть выставлен "
        "счёт в размере EUR {fee}."
    ),
    "consent.photosInternal": (
        "Я согласен(на) на клиническую фото- и рентгенодокументацию для внутреннего использования клиникой."
    ),
    "consent.photosResearch": (
        "Я согласен(на) на использование анонимизированных клинических фотографий в учебных и "
        "научных целях."
    ),
    "consent.photosMarketing": (
        "Я согласен(на) на использование клинических фотографий на сайте клиники и в социальных сетях."
    ),
}

_AR_CONSENT: dict[str, str] = {
    "consent.title": "الموافقة والتوقيع",
    "consent.privacyTitle": "إشعار الخصوصية",
    "consent.privacyNotice": (
        "تقوم العيادة بمعالجة البيانات الشخصية والصحية التي تقدمها في هذا النموذج لغرض علاج "
        "الأسنان والتوثيق والفوترة وفقاً للمادة 6(1)(ب) والمادة 9(2)(ح) من اللائحة العامة لحماية "
        "البيانات. تُحفظ بياناتك طوال فترة الحفظ القانونية ولا يتم الإفصاح عنها لأطراف ثالثة "
        "(مثل المختبرات وشركات التأمين) إلا إذا كان ذلك ضرورياً لعلاجك أو مطلوباً بموجب القانون.\n"
        "يحق لك الاطلاع على بياناتك وتصحيحها ومحوها وتقييد معالجتها، ولك الحق في نقل البيانات وفي "
        "تقديم شكوى إلى هيئة حماية البيانات. يمكن سحب الموافقات الواردة أدناه في أي وقت بأثر مستقبلي."
    ),
    "consent.gdpr": "أوافق على معالجة بياناتي الشخصية والصحية كما هو موضح في إشعار الخصوصية.",
    "consent.driving": (
        "أقر بأن قدرتي على القيادة وتشغيل الآلات قد تتأثر بعد العلاج بالتخدير الموضعي أو التهدئة."
    ),
    "consent.missedAppointment": (
        "أوافق على أن المواعيد التي لا يتم إلغاؤها قبل 24 ساعة على الأقل قد تُحتسب بمبلغ {fee} يورو."
    ),
    "consent.photosInternal": "أوافق على التقاط صور سريرية وصور أشعة للتوثيق داخل العيادة.",
    "consent.photosResearch": "أوافق على استخدام صور سريرية مجهولة الهوية لأغراض التدريب والبحث العلمي.",
    "consent.photosMarketing": "أوافق على استخدام الصور السريرية على موقع العيادة وفي وسائل التواصل الاجتماعي.",
}

_CATALOGS: dict[Language, dict[str, str]] = {
    Language.ENGLISH: {**_EN_LABELS, **_EN_CONSENT},
    Language.GERMAN: {**_DE_LABELS, **_DE_CONSENT},
    Language.RUSSIAN: dict(_RU_CONSENT),
    Language.ARABIC: dict(_AR_CONSENT),
}

_FALLBACK_LANGUAGE = Language.ENGLISH


def consent_key(item_value: str) -> str:
    """Catalog key for a consent item value (``photos_internal`` -> ``consent.photosInternal``)."""

    head, *rest = item_value.split("_")
    return LEGAL_PREFIX + head + "".join(part.capitalize() for part in rest)


class BundledCatalog:
    """Catalog shipped with the service.

    Labels fall back to English for languages without a label table. Legal
    texts never fall back to another language; a missing legal key resolves
    to the key itself so the gap is visible on the document.
    """

    def __init__(self, catalogs: dict[Language, dict[str, str]] | None = None) -> None:
        self._catalogs = catalogs if catalogs is not None else _CATALOGS

    def text(self, key: str, language: Language, **args: Any) -> str:
        template = self._catalogs.get(language, {}).get(key)
        if template is None and not key.startswith(LEGAL_PREFIX):
            template = self._catalogs.get(_FALLBACK_LANGUAGE, {}).get(key)
        if template is None:
            return key
        return template.format(**args) if args else template
